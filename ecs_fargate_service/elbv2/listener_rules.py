#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Listener rules forwarding the traffic matching the conditions to the service target group.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_fargate_service.ecs.service_definition import ServiceDefinition

from compose_x_common.compose_x_common import keyisset, set_else_none
from troposphere import Ref, Template
from troposphere.elasticloadbalancingv2 import (
    Condition,
    ForwardConfig,
    HostHeaderConfig,
    HttpHeaderConfig,
    HttpRequestMethodConfig,
    ListenerRule,
    ListenerRuleAction,
    PathPatternConfig,
    QueryStringConfig,
    QueryStringKeyValue,
    SourceIpConfig,
    TargetGroup,
    TargetGroupTuple,
)

from ecs_fargate_service.common import add_resource
from ecs_fargate_service.common.logging import LOG
from ecs_fargate_service.exceptions import IncompatibleOptions


def host_header_condition(values: list) -> Condition:
    return Condition(
        Field="host-header", HostHeaderConfig=HostHeaderConfig(Values=values)
    )


def path_pattern_condition(values: list) -> Condition:
    return Condition(
        Field="path-pattern", PathPatternConfig=PathPatternConfig(Values=values)
    )


def http_header_condition(header: dict) -> Condition:
    return Condition(
        Field="http-header",
        HttpHeaderConfig=HttpHeaderConfig(
            HttpHeaderName=header["name"], Values=header["values"]
        ),
    )


def http_request_method_condition(values: list) -> Condition:
    return Condition(
        Field="http-request-method",
        HttpRequestMethodConfig=HttpRequestMethodConfig(Values=values),
    )


def query_string_condition(values: list) -> Condition:
    key_values = []
    for query in values:
        props = {"Value": query["value"]}
        if keyisset("key", query):
            props["Key"] = query["key"]
        key_values.append(QueryStringKeyValue(**props))
    return Condition(
        Field="query-string", QueryStringConfig=QueryStringConfig(Values=key_values)
    )


def source_ip_condition(values: list) -> Condition:
    return Condition(Field="source-ip", SourceIpConfig=SourceIpConfig(Values=values))


CONDITIONS = {
    "host_header": host_header_condition,
    "path_pattern": path_pattern_condition,
    "http_header": http_header_condition,
    "http_request_method": http_request_method_condition,
    "query_string": query_string_condition,
    "source_ip": source_ip_condition,
}


def define_rule_conditions(rule: dict) -> list:
    """
    Function to create the conditions of the listener rule

    :param dict rule:
    :return: list of conditions
    :rtype: list[Condition]
    """
    conditions = []
    for condition in set_else_none("conditions", rule, []):
        for condition_type, value in condition.items():
            if condition_type not in CONDITIONS:
                raise KeyError(
                    condition_type, "Is invalid. Expected one of", list(CONDITIONS.keys())
                )
            conditions.append(CONDITIONS[condition_type](value))
    if not conditions:
        raise IncompatibleOptions(
            f"Listener rule {rule['priority']} - At least one condition must be defined"
        )
    return conditions


def define_forward_action(target_group: TargetGroup) -> ListenerRuleAction:
    return ListenerRuleAction(
        Type="forward",
        ForwardConfig=ForwardConfig(
            TargetGroups=[TargetGroupTuple(TargetGroupArn=Ref(target_group))]
        ),
    )


def add_listener_rules(
    service: ServiceDefinition, template: Template, target_group: TargetGroup
) -> list:
    """
    Creates the listener rules forwarding traffic to the target group.

    :raises: IncompatibleOptions if two rules use the same priority
    :return: the listener rules
    :rtype: list[ListenerRule]
    """
    rules = []
    priorities = []
    for rule in set_else_none("listener_rules", service.load_balancer, []):
        priority = rule["priority"]
        if not 1 <= priority <= 50000:
            raise ValueError(
                "Listener rule priority must be between 1 and 50000. Got", priority
            )
        if priority in priorities:
            raise IncompatibleOptions(
                f"{service.name} - Listener rules priority {priority} is used more than once"
            )
        priorities.append(priority)
        rules.append(
            add_resource(
                template,
                ListenerRule(
                    f"ListenerRule{priority}",
                    ListenerArn=service.load_balancer["listener_arn"],
                    Priority=priority,
                    Conditions=define_rule_conditions(rule),
                    Actions=[define_forward_action(target_group)],
                ),
            )
        )
    if not rules:
        LOG.warning(
            f"{service.name} - No listener rules defined."
            f" The target group is not reachable from {service.load_balancer['listener_arn']}"
        )
    return rules
