#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

from copy import deepcopy
from os import path

import yaml

try:
    from yaml import CLoader as Loader
except ImportError:
    from yaml import Loader

from pytest import fixture, raises
from troposphere import Ref, Template
from troposphere.elasticloadbalancingv2 import ListenerRuleAction

from ecs_fargate_service.ecs.service_definition import ServiceDefinition
from ecs_fargate_service.elbv2.listener_rules import (
    add_listener_rules,
    define_rule_conditions,
)
from ecs_fargate_service.elbv2.target_group import (
    add_target_group,
    resolve_health_check_port,
)
from ecs_fargate_service.exceptions import (
    IncompatibleOptions,
    InvalidContainerReference,
)

HERE = path.abspath(path.dirname(__file__))


@fixture
def full_content():
    with open(f"{HERE}/../../use-cases/full.yml") as config_fd:
        return yaml.load(config_fd.read(), Loader=Loader)


def attributes(target_group) -> dict:
    return {
        attribute.Key: attribute.Value
        for attribute in target_group.TargetGroupAttributes
    }


def test_target_group(full_content):
    service = ServiceDefinition(full_content)
    target_group = add_target_group(service, Template())
    assert target_group.TargetType == "ip"
    assert target_group.Port == 8080
    assert target_group.Protocol == "HTTP"
    assert target_group.VpcId == "vpc-0123456789abcdef0"
    assert target_group.HealthCheckPath == "/health"
    assert target_group.HealthCheckPort == "8080"
    assert target_group.HealthCheckIntervalSeconds == 15
    assert target_group.Matcher.HttpCode == "200-299"
    assert attributes(target_group) == {
        "deregistration_delay.timeout_seconds": "15",
        "stickiness.enabled": "true",
        "stickiness.type": "lb_cookie",
        "stickiness.lb_cookie.duration_seconds": "3600",
    }


def test_target_group_defaults(full_content):
    full_content["load_balancer"] = {
        "listener_arn": full_content["load_balancer"]["listener_arn"]
    }
    service = ServiceDefinition(full_content)
    assert service.lb_container.name == "app"
    assert service.lb_container_port == 8080
    target_group = add_target_group(service, Template())
    assert target_group.HealthCheckPort == "traffic-port"
    assert attributes(target_group) == {"deregistration_delay.timeout_seconds": "30"}
    assert "Matcher" not in target_group.properties


def test_health_check_port(full_content):
    service = ServiceDefinition(full_content)
    assert resolve_health_check_port(service, None) == "traffic-port"
    assert resolve_health_check_port(service, 9090) == "9090"
    assert resolve_health_check_port(service, "metrics") == "9090"
    with raises(InvalidContainerReference):
        resolve_health_check_port(service, "grpc")


def test_invalid_target_group_settings(full_content):
    content = deepcopy(full_content)
    content["load_balancer"]["target_group"]["slow_start"] = 10
    with raises(ValueError):
        add_target_group(ServiceDefinition(content), Template())

    content = deepcopy(full_content)
    content["load_balancer"]["target_group"]["health_check"]["timeout"] = 20
    with raises(ValueError):
        add_target_group(ServiceDefinition(content), Template())

    content = deepcopy(full_content)
    content["load_balancer"]["container_port"] = 8443
    with raises(InvalidContainerReference):
        ServiceDefinition(content)

    content = deepcopy(full_content)
    content["load_balancer"]["container_name"] = "unknown"
    with raises(InvalidContainerReference):
        ServiceDefinition(content)


def test_listener_rules(full_content):
    service = ServiceDefinition(full_content)
    template = Template()
    target_group = add_target_group(service, template)
    rules = add_listener_rules(service, template, target_group)
    assert [rule.title for rule in rules] == ["ListenerRule10", "ListenerRule11"]
    first = rules[0]
    assert first.ListenerArn == full_content["load_balancer"]["listener_arn"]
    assert first.Priority == 10
    assert [condition.Field for condition in first.Conditions] == [
        "host-header",
        "path-pattern",
    ]
    assert first.Conditions[0].HostHeaderConfig.Values == ["orders.example.com"]
    action = first.Actions[0]
    assert isinstance(action, ListenerRuleAction)
    assert action.Type == "forward"
    assert action.ForwardConfig.TargetGroups[0].TargetGroupArn == Ref(target_group)
    header = rules[1].Conditions[0]
    assert header.Field == "http-header"
    assert header.HttpHeaderConfig.HttpHeaderName == "X-Orders-Version"
    rendered = template.to_dict()["Resources"]["ListenerRule10"]["Properties"]
    assert rendered["Actions"][0]["ForwardConfig"]["TargetGroups"] == [
        {"TargetGroupArn": {"Ref": "ServiceTargetGroup"}}
    ]


def test_rule_conditions():
    conditions = define_rule_conditions(
        {
            "priority": 1,
            "conditions": [
                {"http_request_method": ["GET", "HEAD"]},
                {"query_string": [{"key": "version", "value": "2"}, {"value": "beta"}]},
                {"source_ip": ["10.0.0.0/8"]},
            ],
        }
    )
    assert [condition.Field for condition in conditions] == [
        "http-request-method",
        "query-string",
        "source-ip",
    ]
    query_values = conditions[1].QueryStringConfig.Values
    assert query_values[0].Key == "version"
    assert "Key" not in query_values[1].properties
    with raises(IncompatibleOptions):
        define_rule_conditions({"priority": 1, "conditions": []})
    with raises(KeyError):
        define_rule_conditions({"priority": 1, "conditions": [{"host": ["a"]}]})


def test_duplicate_priorities(full_content):
    full_content["load_balancer"]["listener_rules"][1]["priority"] = 10
    service = ServiceDefinition(full_content)
    template = Template()
    with raises(IncompatibleOptions):
        add_listener_rules(service, template, add_target_group(service, template))


def test_priority_bounds(full_content):
    for priority in [0, 50001]:
        content = deepcopy(full_content)
        content["load_balancer"]["listener_rules"][0]["priority"] = priority
        service = ServiceDefinition(content)
        template = Template()
        with raises(ValueError):
            add_listener_rules(service, template, add_target_group(service, template))
