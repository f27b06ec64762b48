#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Functions to build the ECS Task Definition
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_fargate_service.ecs.service_definition import ServiceDefinition

from compose_x_common.compose_x_common import keyisset, set_else_none
from troposphere import Tags, Template
from troposphere.ecs import (
    AuthorizationConfig,
    EFSVolumeConfiguration,
    EphemeralStorage,
    RuntimePlatform,
    TaskDefinition,
    Volume,
)

from ecs_fargate_service.common import add_resource
from ecs_fargate_service.ecs.container_definitions import render_container_definitions
from ecs_fargate_service.ecs.ecs_params import LOG_GROUP_T, TASK_T


def define_efs_volume(volume: dict) -> Volume:
    efs = volume["efs"]
    props = {
        "FilesystemId": efs["file_system_id"],
        "TransitEncryption": "ENABLED"
        if set_else_none("transit_encryption", efs, True, True)
        else "DISABLED",
    }
    if keyisset("root_directory", efs):
        props["RootDirectory"] = efs["root_directory"]
    if keyisset("access_point_id", efs) or keyisset("iam", efs):
        if props["TransitEncryption"] != "ENABLED":
            raise ValueError(
                f"Volume {volume['name']} - transit_encryption is required to use access points or IAM"
            )
        auth_props = {"IAM": "ENABLED" if keyisset("iam", efs) else "DISABLED"}
        if keyisset("access_point_id", efs):
            auth_props["AccessPointId"] = efs["access_point_id"]
        props["AuthorizationConfig"] = AuthorizationConfig(**auth_props)
    return Volume(Name=volume["name"], EFSVolumeConfiguration=EFSVolumeConfiguration(**props))


def define_volumes(service: ServiceDefinition) -> list:
    volumes = []
    for volume in service.volumes:
        if keyisset("efs", volume):
            volumes.append(define_efs_volume(volume))
        else:
            volumes.append(Volume(Name=volume["name"]))
    return volumes


def add_task_definition(
    service: ServiceDefinition,
    template: Template,
    execution_role_arn,
    task_role_arn,
) -> TaskDefinition:
    """
    Creates the Fargate task definition of the service.

    :param ServiceDefinition service:
    :param troposphere.Template template:
    :param execution_role_arn: the IAM role ECS uses to start the containers
    :param task_role_arn: the IAM role the containers use
    :return: the task definition
    """
    props = {
        "Family": service.family,
        "Cpu": str(service.cpu),
        "Memory": str(service.memory),
        "NetworkMode": "awsvpc",
        "RequiresCompatibilities": ["FARGATE"],
        "RuntimePlatform": RuntimePlatform(
            CpuArchitecture=service.cpu_architecture,
            OperatingSystemFamily=service.operating_system_family,
        ),
        "ExecutionRoleArn": execution_role_arn,
        "TaskRoleArn": task_role_arn,
        "ContainerDefinitions": render_container_definitions(service),
    }
    if service.ephemeral_storage:
        props["EphemeralStorage"] = EphemeralStorage(
            SizeInGiB=service.ephemeral_storage
        )
    if service.volumes:
        props["Volumes"] = define_volumes(service)
    if service.tags:
        props["Tags"] = Tags(**service.tags)
    if LOG_GROUP_T in template.resources:
        props["DependsOn"] = [LOG_GROUP_T]
    return add_resource(template, TaskDefinition(TASK_T, **props))
