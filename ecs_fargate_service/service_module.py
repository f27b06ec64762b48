#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Main module generating the root stack of the service and its IAM nested stack.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_fargate_service.common.settings import ServiceSettings

from troposphere import GetAtt, Output, Ref

from ecs_fargate_service.common import add_outputs, add_resource, build_template
from ecs_fargate_service.common.logging import LOG
from ecs_fargate_service.common.stacks import ServiceStack
from ecs_fargate_service.ecs.ecs_networking import add_service_security_group
from ecs_fargate_service.ecs.ecs_scaling import add_service_scaling
from ecs_fargate_service.ecs.ecs_service import add_service
from ecs_fargate_service.ecs.service_definition import ServiceDefinition
from ecs_fargate_service.ecs.task_definition import add_task_definition
from ecs_fargate_service.ecs.task_logging import create_log_group
from ecs_fargate_service.elbv2.listener_rules import add_listener_rules
from ecs_fargate_service.elbv2.target_group import add_target_group
from ecs_fargate_service.iam.iam_stack import IamStack
from ecs_fargate_service.route53.route53_records import add_dns_records


def create_root_stack(settings: ServiceSettings) -> ServiceStack:
    """
    Function to create the root stack of the service

    :param ServiceSettings settings:
    :return: the root stack
    """
    template = build_template(f"Root stack for the ECS Fargate Service {settings.name}")
    return ServiceStack(settings.name, stack_template=template, file_name=settings.name)


def generate_full_template(settings: ServiceSettings) -> ServiceStack:
    """
    Function to generate the root template of the service.

    * Imports the service configuration and injects the defaults
    * Creates the log group and the security group
    * Creates the IAM roles in a nested stack, unless existing roles are used
    * Creates the target group and listener rules when a load balancer is set
    * Creates the task definition and the ECS Service
    * Creates the autoscaling and DNS records
    * Adds the outputs

    :param ServiceSettings settings: The settings for the execution
    :return: the root stack
    :rtype: ServiceStack
    """
    service = ServiceDefinition(settings.content)
    LOG.info(
        f"{service.name} - Containers to process {list(service.containers.keys())}"
    )
    root_stack = create_root_stack(settings)
    template = root_stack.stack_template

    log_group = create_log_group(service, template)
    security_group = add_service_security_group(service, template)

    iam_stack = IamStack(service)
    if iam_stack.creates_roles:
        add_resource(template, iam_stack)
    else:
        LOG.info(f"{service.name} - Using existing IAM roles. No IAM stack")

    target_group = None
    listener_rules = []
    if service.load_balancer:
        target_group = add_target_group(service, template)
        listener_rules = add_listener_rules(service, template, target_group)

    task_definition = add_task_definition(
        service,
        template,
        execution_role_arn=iam_stack.execution_role_arn,
        task_role_arn=iam_stack.task_role_arn,
    )
    ecs_service = add_service(
        service,
        template,
        task_definition,
        security_group,
        target_group=target_group,
        listener_rules=listener_rules,
    )
    scalable_target = add_service_scaling(
        service, template, ecs_service, target_group=target_group
    )
    outputs = [
        Output("ServiceName", Value=GetAtt(ecs_service, "Name")),
        Output("ServiceArn", Value=Ref(ecs_service)),
        Output("TaskDefinitionArn", Value=Ref(task_definition)),
        Output(
            "LogGroupName",
            Value=Ref(log_group) if log_group else service.log_group_name,
        ),
        Output("SecurityGroupId", Value=GetAtt(security_group, "GroupId")),
        Output("TaskRoleArn", Value=iam_stack.task_role_arn),
        Output("ExecutionRoleArn", Value=iam_stack.execution_role_arn),
    ]
    if target_group:
        outputs.append(Output("TargetGroupArn", Value=Ref(target_group)))
    if scalable_target:
        outputs.append(Output("ScalableTargetId", Value=Ref(scalable_target)))
    outputs += add_dns_records(service, template)
    add_outputs(template, outputs)
    return root_stack
