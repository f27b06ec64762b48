#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Renders the container definitions in the format of the ECS RegisterTaskDefinition API,
i.e. to use with ``aws ecs register-task-definition --cli-input-json``.
"""

from __future__ import annotations

from troposphere import AWS_REGION

FREE_FORM_KEYS = ["Options", "DockerLabels"]


def lower_first(key: str) -> str:
    return key[0].lower() + key[1:]


def resolve_intrinsic(value: dict, resolve: dict):
    """
    Resolves {"Ref": <name>} values from the resolve mapping.

    :raises: ValueError for any other function, or for Ref we have no value for.
    """
    if list(value.keys()) == ["Ref"] and value["Ref"] in resolve:
        return resolve[value["Ref"]]
    raise ValueError(
        "Cannot resolve the intrinsic function outside of CloudFormation", value
    )


def is_intrinsic(value) -> bool:
    return (
        isinstance(value, dict)
        and len(value) == 1
        and (list(value.keys())[0] == "Ref" or list(value.keys())[0].startswith("Fn::"))
    )


def api_format(value, resolve: dict, free_form: bool = False):
    """
    Recursively changes the CloudFormation property names into the API ones.
    Keys of free form mappings (log driver options, docker labels) are kept as they are.
    """
    if is_intrinsic(value):
        return resolve_intrinsic(value, resolve)
    if isinstance(value, dict):
        formatted = {}
        for key, item in value.items():
            if free_form:
                formatted[key] = api_format(item, resolve, free_form=False)
            else:
                formatted[lower_first(key)] = api_format(
                    item, resolve, free_form=key in FREE_FORM_KEYS
                )
        return formatted
    if isinstance(value, list):
        return [api_format(item, resolve) for item in value]
    return value


def container_definitions_to_api(
    definitions: list, region: str, resolve: dict = None
) -> list:
    """
    :param list[troposphere.ecs.ContainerDefinition] definitions:
    :param str region: the region to resolve AWS::Region with
    :param dict resolve: additional Ref names to value mapping
    :return: the container definitions as expected by the ECS API
    :rtype: list[dict]
    """
    if not region:
        raise ValueError("The region must be set to render the API container definitions")
    _resolve = {AWS_REGION: region}
    if resolve:
        _resolve.update(resolve)
    return [api_format(definition.to_dict(), _resolve) for definition in definitions]
