#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
CloudWatch log group of the service and the awslogs driver settings of the containers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_fargate_service.ecs.service_definition import ServiceDefinition

from troposphere import Region, Sub, Tags, Template
from troposphere.ecs import LogConfiguration
from troposphere.logs import LogGroup

from ecs_fargate_service.common import add_resource
from ecs_fargate_service.common.logging import LOG
from ecs_fargate_service.ecs.ecs_params import LOG_GROUP_T, RETENTION_VALUES


def define_awslogs_configuration(
    log_group_name: str, stream_prefix: str
) -> LogConfiguration:
    return LogConfiguration(
        LogDriver="awslogs",
        Options={
            "awslogs-group": log_group_name,
            "awslogs-region": Region,
            "awslogs-stream-prefix": stream_prefix,
        },
    )


def log_group_arn(log_group_name: str) -> Sub:
    """
    ARN of the log group streams, to grant access to, from its name.
    """
    return Sub(
        "arn:${AWS::Partition}:logs:${AWS::Region}:${AWS::AccountId}:"
        f"log-group:{log_group_name}:*"
    )


def create_log_group(service: ServiceDefinition, template: Template):
    """
    Function to create the log group the containers log into.

    :return: the log group, None if the service uses an existing log group
    :rtype: troposphere.logs.LogGroup
    """
    if not service.create_log_group:
        LOG.info(f"{service.name} - Using existing log group {service.log_group_name}")
        return None
    if service.log_retention not in RETENTION_VALUES:
        raise ValueError(
            f"{service.name} - logging.retention_in_days must be one of",
            RETENTION_VALUES,
            "Got",
            service.log_retention,
        )
    props = {
        "LogGroupName": service.log_group_name,
        "RetentionInDays": service.log_retention,
    }
    if service.log_kms_key_arn:
        props["KmsKeyId"] = service.log_kms_key_arn
    if service.tags:
        props["Tags"] = Tags(**service.tags)
    return add_resource(template, LogGroup(LOG_GROUP_T, **props))
