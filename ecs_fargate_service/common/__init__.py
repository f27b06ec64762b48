#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Most commonly used functions shared across all modules.
"""

from __future__ import annotations

import re
from datetime import datetime as dt
from uuid import uuid4

from troposphere import AWSObject, Output, Parameter, Template

FILE_PREFIX = f'{dt.utcnow().strftime("%Y/%m/%d/%H%M")}/{str(uuid4().hex)[:6]}'
NONALPHANUM = re.compile(r"([^a-zA-Z\d]+)")


def build_template(description=None, *parameters) -> Template:
    """
    Entry point function to creating the template for the stacks.

    :param str description: Description for the template.
    :param list parameters: List of Parameter objects to add to the template.
    :return: the new template
    :rtype: troposphere.Template
    """
    template = Template(
        "Template generated by ECS Fargate Service" if not description else description
    )
    template.set_version()
    if parameters:
        add_parameters(template, parameters[0])
    return template


def add_parameters(template: Template, parameters: list) -> None:
    """
    Adds the parameters that are not yet defined in the template.
    """
    for parameter in parameters:
        if not isinstance(parameter, Parameter):
            raise TypeError(
                "parameter must be of type", Parameter, "Got", type(parameter)
            )
        if parameter.title not in template.parameters:
            template.add_parameter(parameter)


def add_resource(template: Template, resource: AWSObject) -> AWSObject:
    """
    Function to add a resource to the template, checking whether the title already exists.

    :param troposphere.Template template:
    :param resource:
    :return: the resource added to the template
    """
    if resource.title in template.resources:
        raise KeyError(f"Resource {resource.title} already exists in the template")
    return template.add_resource(resource)


def add_outputs(template: Template, outputs: list) -> None:
    """
    Adds or replaces the outputs in the template.
    """
    for output in outputs:
        if not isinstance(output, Output):
            raise TypeError("output must be of type", Output, "Got", type(output))
        template.outputs[output.title] = output
