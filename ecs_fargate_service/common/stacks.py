#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Module to handle the root stack and its nested stacks. Allows to treat everything in memory before uploading
files into S3 and on disk.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_fargate_service.common.settings import ServiceSettings

from compose_x_common.compose_x_common import keyisset
from troposphere import AWSHelperFn, Template
from troposphere.cloudformation import Stack

from ecs_fargate_service.common import NONALPHANUM
from ecs_fargate_service.common.files import FileArtifact
from ecs_fargate_service.common.logging import LOG


def render_codepipeline_config_file(parameters: list) -> dict:
    """
    Method to write all the parameters in the AWS CFN Config format for Codepipeline

    :param list parameters:
    :return: the template configuration
    """
    config = {"Parameters": {}, "Tags": {}}
    for param in parameters:
        config["Parameters"].update({param["ParameterKey"]: param["ParameterValue"]})
    return config


class ServiceStack(Stack):
    """
    Class to define a CFN Stack as a composition of its template object, parameters, tags etc.
    """

    attributes = [
        "Condition",
        "CreationPolicy",
        "DeletionPolicy",
        "DependsOn",
        "Metadata",
        "UpdatePolicy",
        "UpdateReplacePolicy",
    ]

    def __init__(
        self, name, stack_template, stack_parameters=None, file_name=None, **kwargs
    ):
        """
        Class to keep track of the template object along with the stack object it represents.

        :param str name: name of the stack, its title in the parent template is derived from it
        :param troposphere.Template stack_template: the template object to keep track of
        :param dict stack_parameters: Stack parameters to set
        :param str file_name: override the name of the file the template is written to.
        :param kwargs: the properties and attributes of the stack resource
        """
        self.name = name
        title = NONALPHANUM.sub("", self.name)
        self.file_name = file_name if file_name else title
        if not isinstance(stack_template, Template):
            raise TypeError(
                "stack_template is", type(stack_template), "expected", Template
            )
        self.stack_template = stack_template
        if stack_parameters is not None and not isinstance(stack_parameters, dict):
            raise TypeError("parameters is", type(stack_parameters), "expected", dict)
        stack_kwargs = dict((x, kwargs[x]) for x in self.props.keys() if x in kwargs)
        stack_kwargs.update(
            dict((x, kwargs[x]) for x in self.attributes if x in kwargs)
        )
        stack_kwargs.update(
            {"Parameters": stack_parameters if stack_parameters else {}}
        )
        super().__init__(title, **stack_kwargs)
        if not keyisset("DependsOn", kwargs):
            self.DependsOn = []

    def render_parameters_list_cfn(self) -> list:
        """
        Renders parameters in a CFN parameters config file format. Parameters with
        intrinsic functions values are resolved by CFN and therefore skipped.

        :return: params
        :rtype: list
        """
        params = []
        for param_name, param_value in self.Parameters.items():
            if isinstance(param_value, AWSHelperFn) or param_value is None:
                continue
            if isinstance(param_value, bool):
                params.append(
                    {
                        "ParameterKey": param_name,
                        "ParameterValue": str(param_value).lower(),
                    }
                )
            elif isinstance(param_value, (int, str)):
                params.append(
                    {"ParameterKey": param_name, "ParameterValue": str(param_value)}
                )
            elif isinstance(param_value, list):
                params.append(
                    {
                        "ParameterKey": param_name,
                        "ParameterValue": ",".join(param_value),
                    }
                )
        return params

    def write_config_file(self, settings: ServiceSettings) -> None:
        """
        Method to write the parameters file for the stack. Only uses manual input.
        """
        params = self.render_parameters_list_cfn()
        if not params:
            return
        config_file = FileArtifact(
            file_name=f"{self.file_name}.config",
            content=render_codepipeline_config_file(params),
            settings=settings,
            file_format="json",
        )
        config_file.define_body()
        config_file.write(settings)
        if settings.upload:
            config_file.upload(settings)

    def render(self, settings: ServiceSettings) -> None:
        """
        Function to use when the template is finalized and can be written, validated and uploaded to S3.
        """
        LOG.debug(f"Rendering {self.title}")
        self.DependsOn = sorted(set(self.DependsOn))
        template_file = FileArtifact(
            file_name=self.file_name,
            template=self.stack_template,
            settings=settings,
            file_format=settings.format,
        )
        template_file.define_body()
        template_file.write(settings)
        setattr(self, "TemplateURL", template_file.file_path)
        if settings.upload:
            template_file.upload(settings)
            setattr(self, "TemplateURL", template_file.url)
            LOG.debug(f"Rendered URL = {template_file.url}")
        if settings.validate:
            template_file.validate(settings)
        self.write_config_file(settings)


def process_stacks(root_stack: ServiceStack, settings: ServiceSettings) -> None:
    """
    Function to go through all stacks of a given template and render them.
    Nested stacks are rendered first so that their TemplateURL is set before the parent is rendered.

    :param ServiceStack root_stack: the root template to iterate over the resources.
    :param ServiceSettings settings: The settings for execution
    """
    for resource in root_stack.stack_template.resources.values():
        if isinstance(resource, ServiceStack):
            LOG.debug(f"{root_stack.title} - Processing nested stack {resource.title}")
            process_stacks(resource, settings)
        elif isinstance(resource, Stack):
            LOG.warning(
                f"{resource.title} is a Stack not managed by ecs-fargate-service. Not rendering it."
            )
    root_stack.render(settings)
