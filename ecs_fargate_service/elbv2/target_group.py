#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Target group the service tasks are registered into.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_fargate_service.ecs.service_definition import ServiceDefinition

from compose_x_common.compose_x_common import keyisset, keypresent, set_else_none
from troposphere import Tags, Template
from troposphere.elasticloadbalancingv2 import (
    Matcher,
    TargetGroup,
    TargetGroupAttribute,
)

from ecs_fargate_service.common import add_resource
from ecs_fargate_service.common.logging import LOG
from ecs_fargate_service.ecs.ecs_params import TARGET_GROUP_T
from ecs_fargate_service.exceptions import InvalidContainerReference

DEREGISTRATION_DELAY_TIMEOUT_SECONDS: str = "deregistration_delay.timeout_seconds"
SLOW_START_DURATION_SECONDS: str = "slow_start.duration_seconds"
DEFAULT_DEREGISTRATION_DELAY = 30
DEFAULT_PROTOCOL = "HTTP"
TRAFFIC_PORT = "traffic-port"


def resolve_health_check_port(service: ServiceDefinition, port) -> str:
    """
    Resolves the health check port.

    * not set, the port the traffic is sent to
    * an integer is kept
    * a string names one of the load balanced container port mappings

    :raises: InvalidContainerReference if the name does not match a port mapping
    """
    if port is None or port == TRAFFIC_PORT:
        return TRAFFIC_PORT
    if isinstance(port, int):
        return str(port)
    if port.isdigit():
        return port
    for mapping in service.lb_container.port_mappings:
        if keyisset("name", mapping) and mapping["name"] == port:
            return str(mapping["container_port"])
    raise InvalidContainerReference(
        f"{service.name} - health_check.port {port} is not a port mapping of {service.lb_container.name}."
        " Defined",
        [
            mapping["name"]
            for mapping in service.lb_container.port_mappings
            if keyisset("name", mapping)
        ],
    )


def set_health_check_definition(
    props: dict, service: ServiceDefinition, health_check: dict
) -> None:
    """
    Sets the target group health check properties. Settings not defined are left to the ELBv2 defaults.
    """
    props["HealthCheckPort"] = resolve_health_check_port(
        service, set_else_none("port", health_check)
    )
    mapping = [
        ("enabled", "HealthCheckEnabled"),
        ("path", "HealthCheckPath"),
        ("protocol", "HealthCheckProtocol"),
        ("interval", "HealthCheckIntervalSeconds"),
        ("timeout", "HealthCheckTimeoutSeconds"),
        ("healthy_threshold", "HealthyThresholdCount"),
        ("unhealthy_threshold", "UnhealthyThresholdCount"),
    ]
    for key, prop_name in mapping:
        if keypresent(key, health_check):
            props[prop_name] = health_check[key]
    if keyisset("matcher", health_check):
        props["Matcher"] = Matcher(HttpCode=health_check["matcher"])
    if (
        keypresent("interval", health_check)
        and keypresent("timeout", health_check)
        and health_check["timeout"] >= health_check["interval"]
    ):
        raise ValueError(
            f"{service.name} - target_group.health_check timeout ({health_check['timeout']})"
            f" must be lower than the interval ({health_check['interval']})"
        )


def define_target_group_attributes(target_group: dict) -> list:
    """
    Function to define the target group attributes from the target group settings
    """
    attributes = [
        TargetGroupAttribute(
            Key=DEREGISTRATION_DELAY_TIMEOUT_SECONDS,
            Value=str(
                set_else_none(
                    "deregistration_delay",
                    target_group,
                    DEFAULT_DEREGISTRATION_DELAY,
                    True,
                )
            ),
        )
    ]
    if keypresent("slow_start", target_group):
        slow_start = target_group["slow_start"]
        if slow_start and not 30 <= slow_start <= 900:
            raise ValueError(
                "target_group.slow_start must be 0 or between 30 and 900 seconds. Got",
                slow_start,
            )
        attributes.append(
            TargetGroupAttribute(Key=SLOW_START_DURATION_SECONDS, Value=str(slow_start))
        )
    stickiness = set_else_none("stickiness", target_group)
    if stickiness:
        enabled = set_else_none("enabled", stickiness, True, True)
        attributes.append(
            TargetGroupAttribute(Key="stickiness.enabled", Value=str(enabled).lower())
        )
        if enabled:
            attributes.append(
                TargetGroupAttribute(Key="stickiness.type", Value="lb_cookie")
            )
            if keyisset("duration", stickiness):
                attributes.append(
                    TargetGroupAttribute(
                        Key="stickiness.lb_cookie.duration_seconds",
                        Value=str(stickiness["duration"]),
                    )
                )
    return attributes


def add_target_group(service: ServiceDefinition, template: Template) -> TargetGroup:
    """
    Creates the target group the ECS Service registers its tasks IP addresses into.

    :param ServiceDefinition service:
    :param troposphere.Template template:
    :return: the target group
    """
    target_group = set_else_none("target_group", service.load_balancer, {})
    port = set_else_none("port", target_group, service.lb_container_port)
    if port != service.lb_container_port:
        LOG.warning(
            f"{service.name} - Target group port {port} differs from the container port"
            f" {service.lb_container_port}. ECS registers the tasks with the container port."
        )
    props = {
        "TargetType": "ip",
        "VpcId": service.network["vpc_id"],
        "Port": port,
        "Protocol": set_else_none("protocol", target_group, DEFAULT_PROTOCOL),
        "TargetGroupAttributes": define_target_group_attributes(target_group),
    }
    if keyisset("protocol_version", target_group):
        props["ProtocolVersion"] = target_group["protocol_version"]
    set_health_check_definition(
        props, service, set_else_none("health_check", target_group, {})
    )
    if service.tags:
        props["Tags"] = Tags(**service.tags)
    return add_resource(template, TargetGroup(TARGET_GROUP_T, **props))
