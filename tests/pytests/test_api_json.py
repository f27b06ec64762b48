#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

from os import path

import yaml

try:
    from yaml import CLoader as Loader
except ImportError:
    from yaml import Loader

from pytest import raises
from troposphere import Sub
from troposphere.ecs import ContainerDefinition, LogConfiguration

from ecs_fargate_service.ecs.api_json import container_definitions_to_api
from ecs_fargate_service.ecs.container_definitions import render_container_definitions
from ecs_fargate_service.ecs.service_definition import ServiceDefinition

HERE = path.abspath(path.dirname(__file__))


def get_service(file_name: str) -> ServiceDefinition:
    with open(f"{HERE}/../../use-cases/{file_name}") as config_fd:
        return ServiceDefinition(yaml.load(config_fd.read(), Loader=Loader))


def test_api_format_simple():
    definitions = container_definitions_to_api(
        render_container_definitions(get_service("simple.yml")), "eu-west-1"
    )
    router, nginx = definitions
    assert router["name"] == "log_router"
    assert router["firelensConfiguration"] == {
        "type": "fluentbit",
        "options": {"enable-ecs-log-metadata": "true"},
    }
    assert router["logConfiguration"] == {
        "logDriver": "awslogs",
        "options": {
            "awslogs-group": "/ecs/simple-nginx",
            "awslogs-region": "eu-west-1",
            "awslogs-stream-prefix": "firelens",
        },
    }
    assert nginx["dependsOn"] == [{"containerName": "log_router", "condition": "START"}]
    assert nginx["portMappings"] == [
        {"containerPort": 80, "hostPort": 80, "protocol": "tcp"}
    ]
    assert nginx["logConfiguration"]["logDriver"] == "awsfirelens"
    assert nginx["logConfiguration"]["options"]["Name"] == "cloudwatch_logs"
    assert nginx["logConfiguration"]["options"]["region"] == "eu-west-1"


def test_api_format_full():
    definitions = {
        definition["name"]: definition
        for definition in container_definitions_to_api(
            render_container_definitions(get_service("full.yml")), "eu-west-1"
        )
    }
    app = definitions["app"]
    assert app["healthCheck"]["startPeriod"] == 30
    assert app["linuxParameters"] == {"initProcessEnabled": True}
    assert app["mountPoints"] == [
        {"sourceVolume": "shared", "containerPath": "/srv/shared", "readOnly": False}
    ]
    assert app["ulimits"] == [{"name": "nofile", "softLimit": 65536, "hardLimit": 65536}]
    assert app["environment"][0] == {"name": "DEBUG", "value": "false"}
    assert definitions["cache-warmer"]["logConfiguration"]["options"] == {
        "awslogs-group": "/ecs/cache-warmer",
        "awslogs-region": "eu-west-1",
        "awslogs-stream-prefix": "warmer",
    }


def test_docker_labels_kept_verbatim():
    definition = ContainerDefinition(
        Name="app",
        Image="nginx",
        DockerLabels={"com.example.Team": "Orders", "TraefikEnable": "true"},
    )
    rendered = container_definitions_to_api([definition], "eu-west-1")[0]
    assert rendered["dockerLabels"] == {
        "com.example.Team": "Orders",
        "TraefikEnable": "true",
    }


def test_unresolvable_values():
    definition = ContainerDefinition(
        Name="app",
        Image=Sub("${AWS::AccountId}.dkr.ecr.${AWS::Region}.amazonaws.com/app"),
    )
    with raises(ValueError):
        container_definitions_to_api([definition], "eu-west-1")
    with raises(ValueError):
        container_definitions_to_api(
            render_container_definitions(get_service("simple.yml")), None
        )


def test_additional_resolved_values():
    definition = ContainerDefinition(
        Name="app",
        Image="nginx",
        LogConfiguration=LogConfiguration(
            LogDriver="awslogs",
            Options={"awslogs-group": {"Ref": "ServiceLogGroupName"}},
        ),
    )
    rendered = container_definitions_to_api(
        [definition], "eu-west-1", resolve={"ServiceLogGroupName": "/ecs/app"}
    )[0]
    assert rendered["logConfiguration"]["options"]["awslogs-group"] == "/ecs/app"
