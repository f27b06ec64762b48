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
from troposphere import Template
from troposphere.ecs import Service

from ecs_fargate_service.ecs.ecs_params import SERVICE_SCALING_TARGET, SERVICE_T
from ecs_fargate_service.ecs.ecs_scaling import (
    add_service_scaling,
    cluster_name,
    define_scaling_range,
    define_tracking_target_configuration,
)
from ecs_fargate_service.ecs.service_definition import ServiceDefinition
from ecs_fargate_service.elbv2.target_group import add_target_group
from ecs_fargate_service.exceptions import IncompatibleOptions

HERE = path.abspath(path.dirname(__file__))


def get_content(file_name: str) -> dict:
    with open(f"{HERE}/../../use-cases/{file_name}") as config_fd:
        return yaml.load(config_fd.read(), Loader=Loader)


@fixture
def full_content():
    return get_content("full.yml")


def ecs_service() -> Service:
    return Service(SERVICE_T, Cluster="default", TaskDefinition="abcd")


def test_cluster_name():
    assert cluster_name("default") == "default"
    assert (
        cluster_name("arn:aws:ecs:eu-west-1:012345678912:cluster/production")
        == "production"
    )


def test_scaling_range():
    content = get_content("simple.yml")
    content["desired_count"] = 4
    content["autoscaling"] = {"min_capacity": 1}
    assert define_scaling_range(ServiceDefinition(content)) == (1, 4)
    content["autoscaling"] = {"min_capacity": 6}
    assert define_scaling_range(ServiceDefinition(content)) == (6, 6)
    content["autoscaling"] = {"min_capacity": 0, "max_capacity": 2}
    assert define_scaling_range(ServiceDefinition(content)) == (0, 2)
    content["autoscaling"] = {"min_capacity": 3, "max_capacity": 2}
    with raises(IncompatibleOptions):
        define_scaling_range(ServiceDefinition(content))


def test_tracking_configuration():
    configuration = define_tracking_target_configuration({"target": 75}, "cpu")
    assert configuration.TargetValue == 75.0
    assert configuration.ScaleInCooldown == 300
    assert configuration.ScaleOutCooldown == 60
    assert configuration.DisableScaleIn is False
    assert (
        configuration.PredefinedMetricSpecification.PredefinedMetricType
        == "ECSServiceAverageCPUUtilization"
    )
    with raises(KeyError):
        define_tracking_target_configuration({"target": 75}, "disk")


def test_full_scaling(full_content):
    service = ServiceDefinition(full_content)
    template = Template()
    target_group = add_target_group(service, template)
    scalable_target = add_service_scaling(
        service, template, ecs_service(), target_group=target_group
    )
    assert scalable_target.title == SERVICE_SCALING_TARGET
    assert (scalable_target.MinCapacity, scalable_target.MaxCapacity) == (2, 10)
    assert scalable_target.ScalableDimension == "ecs:service:DesiredCount"
    assert scalable_target.ResourceId.to_dict() == {
        "Fn::Sub": "service/production/${EcsService.Name}"
    }
    action = scalable_target.ScheduledActions[0]
    assert action.ScheduledActionName == "night"
    assert action.Timezone == "Europe/London"
    assert action.ScalableTargetAction.MaxCapacity == 2

    assert "ServiceCpuTrackingPolicy" in template.resources
    assert "ServiceMemoryTrackingPolicy" not in template.resources
    requests = template.resources["ServiceRequestCountTrackingPolicy"]
    configuration = requests.TargetTrackingScalingPolicyConfiguration
    assert configuration.ScaleInCooldown == 600
    assert configuration.TargetValue == 500.0
    label = configuration.PredefinedMetricSpecification.ResourceLabel.to_dict()
    assert label["Fn::Join"][1][0] == "app/public/0123456789abcdef"


def test_no_scaling():
    service = ServiceDefinition(get_content("simple.yml"))
    template = Template()
    assert add_service_scaling(service, template, ecs_service()) is None
    assert template.resources == {}


def test_request_count_requirements(full_content):
    content = deepcopy(full_content)
    del content["load_balancer"]["load_balancer_full_name"]
    service = ServiceDefinition(content)
    template = Template()
    with raises(IncompatibleOptions):
        add_service_scaling(
            service,
            template,
            ecs_service(),
            target_group=add_target_group(service, template),
        )

    content = get_content("simple.yml")
    content["autoscaling"] = {"alb_request_count": {"target": 100}}
    with raises(IncompatibleOptions):
        add_service_scaling(ServiceDefinition(content), Template(), ecs_service())


def test_invalid_scheduled_actions():
    content = get_content("simple.yml")
    content["autoscaling"] = {"scheduled": [{"name": "noop", "schedule": "rate(1 day)"}]}
    with raises(IncompatibleOptions):
        add_service_scaling(ServiceDefinition(content), Template(), ecs_service())
    content["autoscaling"] = {
        "scheduled": [
            {"name": "bad", "schedule": "rate(1 day)", "min_capacity": 3, "max_capacity": 1}
        ]
    }
    with raises(IncompatibleOptions):
        add_service_scaling(ServiceDefinition(content), Template(), ecs_service())
