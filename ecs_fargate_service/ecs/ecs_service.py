#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Functions to build the ECS Service Definition
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_fargate_service.ecs.service_definition import ServiceDefinition

from compose_x_common.compose_x_common import keypresent, set_else_none
from troposphere import Ref, Tags, Template
from troposphere.ec2 import SecurityGroup
from troposphere.ecs import (
    CapacityProviderStrategyItem,
    DeploymentCircuitBreaker,
    DeploymentConfiguration,
    DeploymentController,
)
from troposphere.ecs import LoadBalancer as EcsLoadBalancer
from troposphere.ecs import Service, TaskDefinition
from troposphere.elasticloadbalancingv2 import TargetGroup

from ecs_fargate_service.common import add_resource
from ecs_fargate_service.common.logging import LOG
from ecs_fargate_service.ecs.ecs_networking import define_network_configuration
from ecs_fargate_service.ecs.ecs_params import SERVICE_T

DEFAULT_HEALTH_CHECK_GRACE_PERIOD = 60


def define_deployment_options(service: ServiceDefinition) -> DeploymentConfiguration:
    """
    Function to define the DeploymentConfiguration.
    Default is to have the circuit breaker on, with rollback.
    """
    circuit_breaker = set_else_none("circuit_breaker", service.deployment, {})
    minimum = set_else_none("minimum_healthy_percent", service.deployment, 100, True)
    maximum = set_else_none("maximum_percent", service.deployment, 200)
    if maximum <= minimum:
        raise ValueError(
            f"{service.name} - maximum_percent ({maximum}) must be greater than"
            f" minimum_healthy_percent ({minimum}) for rolling updates"
        )
    return DeploymentConfiguration(
        MinimumHealthyPercent=minimum,
        MaximumPercent=maximum,
        DeploymentCircuitBreaker=DeploymentCircuitBreaker(
            Enable=set_else_none("enable", circuit_breaker, True, True),
            Rollback=set_else_none("rollback", circuit_breaker, True, True),
        ),
    )


def define_capacity_provider_strategy(service: ServiceDefinition) -> list:
    strategy = []
    for provider in service.capacity_provider_strategy:
        props = {
            "CapacityProvider": provider["capacity_provider"],
            "Weight": set_else_none("weight", provider, 1, True),
        }
        if keypresent("base", provider):
            props["Base"] = provider["base"]
        strategy.append(CapacityProviderStrategyItem(**props))
    if not any(provider.properties["Weight"] for provider in strategy):
        raise ValueError(
            f"{service.name} - At least one capacity provider must have a weight greater than 0"
        )
    return strategy


def add_service(
    service: ServiceDefinition,
    template: Template,
    task_definition: TaskDefinition,
    security_group: SecurityGroup,
    target_group: TargetGroup = None,
    listener_rules: list = None,
) -> Service:
    """
    Creates the ECS Service running the task definition on AWS Fargate.

    :param ServiceDefinition service:
    :param troposphere.Template template:
    :param task_definition: the task definition to run
    :param security_group: the security group of the tasks
    :param target_group: the target group to register the tasks into
    :param list listener_rules: the rules forwarding to the target group. The service waits for them
    :return: the ECS Service
    """
    props = {
        "ServiceName": service.name,
        "Cluster": service.cluster,
        "TaskDefinition": Ref(task_definition),
        "DesiredCount": service.desired_count,
        "PlatformVersion": service.platform_version,
        "NetworkConfiguration": define_network_configuration(service, security_group),
        "DeploymentConfiguration": define_deployment_options(service),
        "DeploymentController": DeploymentController(Type="ECS"),
        "EnableExecuteCommand": service.enable_execute_command,
        "EnableECSManagedTags": set_else_none(
            "enable_ecs_managed_tags", service.deployment, True, True
        ),
    }
    propagate_tags = set_else_none("propagate_tags", service.deployment, "SERVICE")
    if propagate_tags != "NONE":
        props["PropagateTags"] = propagate_tags
    if service.capacity_provider_strategy:
        props["CapacityProviderStrategy"] = define_capacity_provider_strategy(service)
    else:
        props["LaunchType"] = "FARGATE"
    if target_group:
        props["LoadBalancers"] = [
            EcsLoadBalancer(
                ContainerName=service.lb_container.name,
                ContainerPort=service.lb_container_port,
                TargetGroupArn=Ref(target_group),
            )
        ]
        props["HealthCheckGracePeriodSeconds"] = set_else_none(
            "health_check_grace_period",
            service.load_balancer,
            DEFAULT_HEALTH_CHECK_GRACE_PERIOD,
            True,
        )
    if listener_rules:
        props["DependsOn"] = [rule.title for rule in listener_rules]
    if service.tags:
        props["Tags"] = Tags(**service.tags)
    LOG.info(
        f"{service.name} - Service on cluster {service.cluster}"
        f" with {service.desired_count} task(s) of {service.family}"
    )
    return add_resource(template, Service(SERVICE_T, **props))
