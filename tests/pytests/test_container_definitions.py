#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Module to test the assembly of the containers definitions with the log router sidecar.
"""

from copy import deepcopy
from os import path

import yaml

try:
    from yaml import CLoader as Loader
except ImportError:
    from yaml import Loader

from pytest import fixture, raises
from troposphere import Region

from ecs_fargate_service.ecs.container_definitions import (
    define_health_check,
    order_containers,
    render_container_definitions,
)
from ecs_fargate_service.ecs.service_container import ServiceContainer
from ecs_fargate_service.ecs.service_definition import ServiceDefinition
from ecs_fargate_service.exceptions import (
    IncompatibleOptions,
    InvalidContainerReference,
    InvalidFargateSettings,
)

HERE = path.abspath(path.dirname(__file__))


def get_content(file_name: str) -> dict:
    with open(f"{HERE}/../../use-cases/{file_name}") as config_fd:
        return yaml.load(config_fd.read(), Loader=Loader)


@fixture
def simple_content():
    return get_content("simple.yml")


@fixture
def full_content():
    return get_content("full.yml")


def by_name(definitions: list) -> dict:
    return {definition.Name: definition for definition in definitions}


def test_simple_service_with_log_router(simple_content):
    definitions = render_container_definitions(ServiceDefinition(simple_content))
    assert [definition.Name for definition in definitions] == ["log_router", "nginx"]
    router, nginx = definitions

    assert router.Image == "public.ecr.aws/aws-observability/aws-for-fluent-bit:stable"
    assert router.Essential is True
    assert router.MemoryReservation == 50
    assert router.Cpu == 0
    assert router.FirelensConfiguration.Type == "fluentbit"
    assert router.FirelensConfiguration.Options == {"enable-ecs-log-metadata": "true"}
    assert router.LogConfiguration.LogDriver == "awslogs"
    assert router.LogConfiguration.Options == {
        "awslogs-group": "/ecs/simple-nginx",
        "awslogs-region": Region,
        "awslogs-stream-prefix": "firelens",
    }
    assert "DependsOn" not in router.properties

    assert nginx.Essential is True
    assert nginx.DependsOn[0].ContainerName == "log_router"
    assert nginx.DependsOn[0].Condition == "START"
    assert nginx.LogConfiguration.LogDriver == "awsfirelens"
    assert nginx.LogConfiguration.Options == {
        "Name": "cloudwatch_logs",
        "region": Region,
        "log_group_name": "/ecs/simple-nginx",
        "log_stream_prefix": "nginx/",
        "auto_create_group": "false",
    }
    port = nginx.PortMappings[0]
    assert (port.ContainerPort, port.HostPort, port.Protocol) == (80, 80, "tcp")
    for absent in ["HealthCheck", "Environment", "Secrets", "Command", "LinuxParameters"]:
        assert absent not in nginx.properties


def test_full_service_ordering_and_fields(full_content):
    definitions = render_container_definitions(ServiceDefinition(full_content))
    assert [definition.Name for definition in definitions] == [
        "log_router",
        "migrations",
        "app",
        "cache-warmer",
    ]
    containers = by_name(definitions)
    app = containers["app"]
    assert [env.Name for env in app.Environment] == ["DEBUG", "LOG_LEVEL", "WORKERS"]
    assert [env.Value for env in app.Environment] == ["false", "info", "4"]
    assert [secret.Name for secret in app.Secrets] == ["API_KEY", "DATABASE_URL"]
    assert app.HealthCheck.Command == [
        "CMD-SHELL",
        "curl -f http://localhost:8080/health || exit 1",
    ]
    assert app.HealthCheck.Interval == 30
    assert app.HealthCheck.Timeout == 5
    assert app.HealthCheck.Retries == 3
    assert app.HealthCheck.StartPeriod == 30
    assert sorted(
        (dependency.ContainerName, dependency.Condition) for dependency in app.DependsOn
    ) == [("log_router", "START"), ("migrations", "SUCCESS")]
    assert app.LogConfiguration.Options["log_stream_prefix"] == "api/"
    assert app.LinuxParameters.InitProcessEnabled is True
    assert app.MountPoints[0].SourceVolume == "shared"
    assert app.MountPoints[0].ReadOnly is False
    assert app.Ulimits[0].SoftLimit == 65536
    assert app.PortMappings[1].Name == "metrics"

    migrations = containers["migrations"]
    assert migrations.Essential is False
    assert migrations.Command == ["python", "manage.py", "migrate", "--noinput"]

    warmer = containers["cache-warmer"]
    assert warmer.LogConfiguration.LogDriver == "awslogs"
    assert warmer.LogConfiguration.Options["awslogs-stream-prefix"] == "warmer"
    assert [
        (dependency.ContainerName, dependency.Condition) for dependency in warmer.DependsOn
    ] == [("app", "HEALTHY"), ("log_router", "START")]

    assert "LinuxParameters" not in containers["log_router"].properties


def test_service_without_log_router():
    definitions = render_container_definitions(
        ServiceDefinition(get_content("no_log_router.yml"))
    )
    assert len(definitions) == 1
    worker = definitions[0]
    assert worker.Name == "worker"
    assert "DependsOn" not in worker.properties
    assert worker.LogConfiguration.LogDriver == "awslogs"
    assert worker.LogConfiguration.Options == {
        "awslogs-group": "/shared/workers",
        "awslogs-region": Region,
        "awslogs-stream-prefix": "worker",
    }
    assert worker.Command == ["python", "-m", "worker"]
    assert worker.Environment[0].Name == "QUEUE_URL"


def test_render_is_repeatable(simple_content):
    service = ServiceDefinition(simple_content)
    first = [definition.to_dict() for definition in render_container_definitions(service)]
    second = [definition.to_dict() for definition in render_container_definitions(service)]
    assert first == second


def test_log_router_settings(simple_content):
    simple_content["log_router"] = {
        "name": "fluentbit",
        "image": "my-registry/fluent-bit:custom",
        "memory_reservation": 64,
        "output": {"name": "kinesis_firehose", "options": {"delivery_stream": "logs"}},
        "environment": {"FLB_LOG_LEVEL": "debug"},
    }
    simple_content["containers"]["nginx"]["firelens_options"] = {"time_key": "ts"}
    definitions = by_name(render_container_definitions(ServiceDefinition(simple_content)))
    assert definitions["fluentbit"].Image == "my-registry/fluent-bit:custom"
    assert definitions["fluentbit"].Environment[0].Name == "FLB_LOG_LEVEL"
    assert definitions["nginx"].LogConfiguration.Options == {
        "Name": "kinesis_firehose",
        "delivery_stream": "logs",
        "time_key": "ts",
    }
    assert definitions["nginx"].DependsOn[0].ContainerName == "fluentbit"


def test_health_check_commands():
    assert define_health_check({"command": "exit 0"}).Command == ["CMD-SHELL", "exit 0"]
    assert define_health_check({"command": ["CMD", "true"]}).Command == ["CMD", "true"]
    assert define_health_check({"command": ["/bin/check", "-q"]}).Command == [
        "/bin/check",
        "-q",
    ]
    health_check = define_health_check({"command": "true", "interval": 10, "retries": 5})
    assert (health_check.Interval, health_check.Timeout, health_check.Retries) == (10, 5, 5)


def test_order_containers():
    first = ServiceContainer("first", {"image": "a"})
    second = ServiceContainer("second", {"image": "a", "depends_on": {"third": "START"}})
    third = ServiceContainer("third", {"image": "a"})
    ordered = order_containers([first, second, third])
    assert [container.name for container in ordered] == ["first", "third", "second"]

    one = ServiceContainer("one", {"image": "a", "depends_on": {"two": "START"}})
    two = ServiceContainer("two", {"image": "a", "depends_on": {"one": "START"}})
    with raises(InvalidContainerReference):
        order_containers([one, two])


def test_invalid_dependencies(simple_content):
    content = deepcopy(simple_content)
    content["containers"]["nginx"]["depends_on"] = {"missing": "START"}
    with raises(InvalidContainerReference):
        render_container_definitions(ServiceDefinition(content))

    content = deepcopy(simple_content)
    content["containers"]["sidecar"] = {"image": "busybox", "essential": False}
    content["containers"]["nginx"]["depends_on"] = {"sidecar": "HEALTHY"}
    with raises(InvalidContainerReference):
        render_container_definitions(ServiceDefinition(content))

    content["containers"]["sidecar"]["health_check"] = {"command": "true"}
    definitions = by_name(render_container_definitions(ServiceDefinition(content)))
    assert ("sidecar", "HEALTHY") in [
        (dependency.ContainerName, dependency.Condition)
        for dependency in definitions["nginx"].DependsOn
    ]

    content = deepcopy(simple_content)
    content["containers"]["sidecar"] = {"image": "busybox", "depends_on": {"nginx": "START"}}
    content["containers"]["nginx"]["depends_on"] = {"sidecar": "START"}
    with raises(InvalidContainerReference):
        render_container_definitions(ServiceDefinition(content))

    content = deepcopy(simple_content)
    content["containers"]["nginx"]["depends_on"] = {"nginx": "START"}
    with raises(InvalidContainerReference):
        ServiceDefinition(content)


def test_invalid_containers(simple_content):
    content = deepcopy(simple_content)
    content["containers"]["log_router"] = {"image": "busybox"}
    with raises(IncompatibleOptions):
        ServiceDefinition(content)

    content = deepcopy(simple_content)
    content["containers"]["nginx"]["port_mappings"] = [
        {"container_port": 80, "host_port": 8080}
    ]
    with raises(InvalidFargateSettings):
        ServiceDefinition(content)

    content = deepcopy(simple_content)
    content["containers"]["nginx"]["environment"] = {"TOKEN": "abcd"}
    content["containers"]["nginx"]["secrets"] = {
        "TOKEN": "arn:aws:ssm:eu-west-1:012345678912:parameter/token"
    }
    with raises(IncompatibleOptions):
        ServiceDefinition(content)


def test_compute_validation(simple_content):
    content = deepcopy(simple_content)
    content["log_router"] = {"enabled": False}
    content["containers"]["nginx"]["essential"] = False
    with raises(InvalidFargateSettings):
        ServiceDefinition(content)

    content = deepcopy(simple_content)
    content["containers"]["nginx"]["cpu"] = 512
    with raises(InvalidFargateSettings):
        ServiceDefinition(content)

    content = deepcopy(simple_content)
    content["cpu"] = 512
    content["memory"] = 512
    with raises(InvalidFargateSettings):
        ServiceDefinition(content)

    content = deepcopy(simple_content)
    content["cpu"] = 300
    with raises(InvalidFargateSettings):
        ServiceDefinition(content)

    content = deepcopy(simple_content)
    content["containers"]["nginx"]["memory"] = 1024
    with raises(InvalidFargateSettings):
        ServiceDefinition(content)

    content = deepcopy(simple_content)
    content["containers"]["nginx"]["memory_reservation"] = 480
    with raises(InvalidFargateSettings):
        ServiceDefinition(content)

    content = deepcopy(simple_content)
    content["cpu"] = 1024
    content["memory"] = 4096
    content["containers"]["nginx"]["cpu"] = 1024
    content["containers"]["nginx"]["memory"] = 4000
    service = ServiceDefinition(content)
    assert service.cpu == 1024
