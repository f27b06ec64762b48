#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Assembles the task definition containers from the service containers and the log router sidecar.

The log router, when enabled, is a startup dependency of all the other containers, which ship their logs to it
through the awsfirelens driver. Containers are ordered so that dependencies always come first.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_fargate_service.ecs.service_definition import ServiceDefinition
    from ecs_fargate_service.ecs.service_container import ServiceContainer

from compose_x_common.compose_x_common import keypresent, set_else_none
from troposphere.ecs import (
    ContainerDefinition,
    ContainerDependency,
    Environment,
    HealthCheck,
    LinuxParameters,
    LogConfiguration,
    MountPoint,
    PortMapping,
    RepositoryCredentials,
    Secret,
    Ulimit,
)

from ecs_fargate_service.common.logging import LOG
from ecs_fargate_service.ecs import ecs_params
from ecs_fargate_service.ecs.task_logging import define_awslogs_configuration
from ecs_fargate_service.exceptions import InvalidContainerReference


def define_environment(environment: dict) -> list:
    return [Environment(Name=name, Value=environment[name]) for name in sorted(environment)]


def define_secrets(secrets: dict) -> list:
    return [Secret(Name=name, ValueFrom=secrets[name]) for name in sorted(secrets)]


def define_port_mappings(port_mappings: list) -> list:
    mappings = []
    for port in port_mappings:
        props = {
            "ContainerPort": port["container_port"],
            "HostPort": port["host_port"],
            "Protocol": port["protocol"],
        }
        if keypresent("name", port):
            props["Name"] = port["name"]
        if keypresent("app_protocol", port):
            props["AppProtocol"] = port["app_protocol"]
        mappings.append(PortMapping(**props))
    return mappings


def define_health_check(health_check: dict) -> HealthCheck:
    """
    Creates the container HealthCheck. A command given as a string runs with the container default shell,
    a list is used as-is.
    """
    command = health_check["command"]
    if isinstance(command, str):
        command = ["CMD-SHELL", command]
    props = {
        "Command": command,
        "Interval": set_else_none(
            "interval", health_check, ecs_params.HEALTHCHECK_DEFAULTS["interval"]
        ),
        "Timeout": set_else_none(
            "timeout", health_check, ecs_params.HEALTHCHECK_DEFAULTS["timeout"]
        ),
        "Retries": set_else_none(
            "retries", health_check, ecs_params.HEALTHCHECK_DEFAULTS["retries"]
        ),
    }
    if keypresent("start_period", health_check):
        props["StartPeriod"] = health_check["start_period"]
    return HealthCheck(**props)


def define_log_configuration(
    container: ServiceContainer, service: ServiceDefinition
) -> LogConfiguration:
    """
    Defines how the container logs are shipped.

    * An explicit log_configuration is used as-is.
    * The log router logs to the service log group with awslogs.
    * With the log router enabled, the other containers use awsfirelens.
    * Otherwise, the containers log to the service log group with awslogs.
    """
    if container.log_configuration:
        props = {"LogDriver": container.log_configuration["log_driver"]}
        if keypresent("options", container.log_configuration):
            props["Options"] = dict(container.log_configuration["options"])
        return LogConfiguration(**props)
    if service.log_router and container is service.log_router.container:
        return define_awslogs_configuration(
            service.log_group_name, ecs_params.LOG_ROUTER_STREAM_PREFIX
        )
    if service.log_router:
        return service.log_router.container_log_configuration(
            container, service.log_group_name
        )
    return define_awslogs_configuration(service.log_group_name, container.name)


def set_log_router_dependencies(service: ServiceDefinition) -> None:
    """
    The log router starts before all the other containers.
    """
    if not service.log_router:
        return
    for container in service.containers.values():
        container.add_dependency(service.log_router.name, "START")


def validate_dependencies(service: ServiceDefinition) -> None:
    """
    Validates that the containers dependencies exist and that HEALTHY conditions can be evaluated.
    """
    names = [container.name for container in service.all_containers]
    for container in service.all_containers:
        for dependency_name, condition in container.depends_on:
            if dependency_name not in names:
                raise InvalidContainerReference(
                    f"{service.name}.{container.name} - depends_on {dependency_name} is not defined. Defined",
                    names,
                )
            dependency = service.get_container(dependency_name)
            if condition == "HEALTHY" and not dependency.health_check:
                raise InvalidContainerReference(
                    f"{service.name}.{container.name} - {dependency_name} must define a health_check"
                    " to be used with the HEALTHY condition"
                )
            if condition in ["COMPLETE", "SUCCESS"] and dependency.essential:
                LOG.warning(
                    f"{service.name}.{container.name} - {dependency_name} is essential and expected to exit"
                    f" with {condition}. The task would stop when it exits."
                )


def order_containers(containers: list) -> list:
    """
    Sorts the containers so that every container comes after the containers it depends on.
    Containers without dependencies between them keep the order they were given in.

    :param list[ServiceContainer] containers:
    :raises: InvalidContainerReference when the dependencies form a cycle
    :return: the ordered containers
    """
    ordered = []
    placed = set()
    pending = list(containers)
    while pending:
        for container in pending:
            if all(name in placed for name in container.dependencies_names):
                ordered.append(container)
                placed.add(container.name)
                pending.remove(container)
                break
        else:
            raise InvalidContainerReference(
                "Containers dependencies form a cycle",
                {
                    container.name: container.dependencies_names
                    for container in pending
                },
            )
    return ordered


def define_container_definition(
    container: ServiceContainer, service: ServiceDefinition
) -> ContainerDefinition:
    """
    Renders the container definition from the container settings. Settings not defined are left out.
    """
    definition = container.definition
    props = {
        "Name": container.name,
        "Image": container.image,
        "Essential": container.essential,
        "LogConfiguration": define_log_configuration(container, service),
    }
    if container.cpu is not None:
        props["Cpu"] = container.cpu
    if container.memory:
        props["Memory"] = container.memory
    if container.memory_reservation:
        props["MemoryReservation"] = container.memory_reservation
    if container.command is not None:
        props["Command"] = container.command
    if container.entrypoint is not None:
        props["EntryPoint"] = container.entrypoint
    if container.environment:
        props["Environment"] = define_environment(container.environment)
    if container.secrets:
        props["Secrets"] = define_secrets(container.secrets)
    if container.port_mappings:
        props["PortMappings"] = define_port_mappings(container.port_mappings)
    if container.health_check:
        props["HealthCheck"] = define_health_check(container.health_check)
    if container.depends_on:
        props["DependsOn"] = [
            ContainerDependency(ContainerName=name, Condition=condition)
            for name, condition in container.depends_on
        ]
    if service.log_router and container is service.log_router.container:
        props["FirelensConfiguration"] = service.log_router.firelens_configuration()

    simple_settings = [
        ("working_directory", "WorkingDirectory"),
        ("user", "User"),
        ("readonly_root_filesystem", "ReadonlyRootFilesystem"),
        ("docker_labels", "DockerLabels"),
        ("stop_timeout", "StopTimeout"),
        ("start_timeout", "StartTimeout"),
    ]
    for key, prop_name in simple_settings:
        if keypresent(key, definition):
            props[prop_name] = definition[key]
    if keypresent("mount_points", definition):
        props["MountPoints"] = [
            MountPoint(
                SourceVolume=mount["source_volume"],
                ContainerPath=mount["container_path"],
                ReadOnly=set_else_none("read_only", mount, False, True),
            )
            for mount in definition["mount_points"]
        ]
    if keypresent("ulimits", definition):
        props["Ulimits"] = [
            Ulimit(
                Name=ulimit["name"],
                SoftLimit=ulimit["soft_limit"],
                HardLimit=ulimit["hard_limit"],
            )
            for ulimit in definition["ulimits"]
        ]
    if keypresent("init_process_enabled", definition):
        props["LinuxParameters"] = LinuxParameters(
            InitProcessEnabled=definition["init_process_enabled"]
        )
    elif service.enable_execute_command and container.name in service.containers:
        props["LinuxParameters"] = LinuxParameters(InitProcessEnabled=True)
    if keypresent("repository_credentials", definition):
        props["RepositoryCredentials"] = RepositoryCredentials(
            CredentialsParameter=definition["repository_credentials"]
        )
    return ContainerDefinition(**props)


def render_container_definitions(service: ServiceDefinition) -> list:
    """
    Merges the service containers with the log router sidecar into the task definition containers.

    :param ServiceDefinition service:
    :return: the containers definitions, dependencies first.
    :rtype: list[ContainerDefinition]
    """
    set_log_router_dependencies(service)
    validate_dependencies(service)
    ordered = order_containers(service.all_containers)
    LOG.info(
        f"{service.name} - Containers order: {[container.name for container in ordered]}"
    )
    return [define_container_definition(container, service) for container in ordered]
