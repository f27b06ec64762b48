#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Module to import the service configuration and transform the settings into usable properties,
injecting the defaults for the settings that were not defined.
"""

from __future__ import annotations

from copy import deepcopy

from compose_x_common.compose_x_common import set_else_none

from ecs_fargate_service.common.logging import LOG
from ecs_fargate_service.ecs import ecs_params
from ecs_fargate_service.ecs.log_router import LogRouter
from ecs_fargate_service.ecs.service_container import ServiceContainer
from ecs_fargate_service.exceptions import (
    IncompatibleOptions,
    InvalidContainerReference,
    InvalidFargateSettings,
)


class ServiceDefinition:
    """
    Class to represent the whole service configuration, with defaults injected and cross references validated.

    :ivar dict containers: the containers defined in the configuration, in the order they were declared
    :ivar LogRouter log_router: the log router sidecar settings, None when disabled.
    """

    def __init__(self, content: dict):
        self.content = deepcopy(content)
        self.name = self.content["name"]
        self.cluster = self.content["cluster"]
        self.family = set_else_none("family", self.content, self.name)
        self.cpu = set_else_none("cpu", self.content, ecs_params.DEFAULT_CPU)
        self.memory = set_else_none("memory", self.content, ecs_params.DEFAULT_MEMORY)
        self.cpu_architecture = set_else_none(
            "cpu_architecture", self.content, ecs_params.DEFAULT_CPU_ARCHITECTURE
        )
        self.operating_system_family = set_else_none(
            "operating_system_family", self.content, ecs_params.DEFAULT_OS_FAMILY
        )
        self.platform_version = set_else_none(
            "platform_version", self.content, ecs_params.DEFAULT_PLATFORM_VERSION
        )
        self.desired_count = set_else_none(
            "desired_count", self.content, ecs_params.DEFAULT_DESIRED_COUNT, True
        )
        self.ephemeral_storage = set_else_none("ephemeral_storage", self.content)
        self.network = self.content["network"]
        self.capacity_provider_strategy = set_else_none(
            "capacity_provider_strategy", self.content
        )
        self.volumes = set_else_none("volumes", self.content, [])
        self.tags = set_else_none("tags", self.content, {})

        self.deployment = set_else_none("deployment", self.content, {})
        self.iam = set_else_none("iam", self.content, {})
        self.autoscaling = set_else_none("autoscaling", self.content)
        self.dns = set_else_none("dns", self.content)
        self.load_balancer = set_else_none("load_balancer", self.content)

        logging = set_else_none("logging", self.content, {})
        self.create_log_group = set_else_none("create", logging, True, True)
        self.log_group_name = set_else_none(
            "log_group_name", logging, f"/ecs/{self.name}"
        )
        self.log_retention = set_else_none(
            "retention_in_days", logging, ecs_params.DEFAULT_LOG_RETENTION
        )
        self.log_kms_key_arn = set_else_none("kms_key_arn", logging)

        self.containers = {
            name: ServiceContainer(name, definition)
            for name, definition in self.content["containers"].items()
        }
        self.log_router = LogRouter.from_definition(
            set_else_none("log_router", self.content, {})
        )
        if self.log_router and self.log_router.name in self.containers:
            raise IncompatibleOptions(
                f"Container {self.log_router.name} conflicts with the log router name."
                " Rename the container or set log_router.name"
            )
        self.validate_volumes()
        self.validate_compute()
        self.lb_container = None
        self.lb_container_port = None
        if self.load_balancer:
            self.set_load_balanced_container()

    def __repr__(self):
        return self.name

    @property
    def enable_execute_command(self) -> bool:
        return set_else_none("enable_execute_command", self.deployment, False, True)

    @property
    def all_containers(self) -> list:
        """
        The log router, when enabled, and the user containers
        """
        containers = list(self.containers.values())
        if self.log_router:
            return [self.log_router.container] + containers
        return containers

    def get_container(self, name: str) -> ServiceContainer:
        for container in self.all_containers:
            if container.name == name:
                return container
        raise InvalidContainerReference(
            f"Container {name} is not defined. Defined containers",
            [container.name for container in self.all_containers],
        )

    def validate_compute(self) -> None:
        """
        Validates the task cpu and memory are a valid Fargate combination and that the containers fit in.
        """
        if self.cpu not in ecs_params.FARGATE_MODES:
            raise InvalidFargateSettings(
                f"{self.name} - CPU {self.cpu} is invalid. Must be one of",
                list(ecs_params.FARGATE_MODES.keys()),
            )
        if self.memory not in ecs_params.FARGATE_MODES[self.cpu]:
            raise InvalidFargateSettings(
                f"{self.name} - Memory {self.memory} is invalid for CPU {self.cpu}. Must be one of",
                ecs_params.FARGATE_MODES[self.cpu],
            )
        containers = self.all_containers
        if not any(container.essential for container in containers):
            raise InvalidFargateSettings(
                f"{self.name} - At least one container must be essential"
            )
        containers_cpu = sum(container.cpu for container in containers if container.cpu)
        if containers_cpu > self.cpu:
            raise InvalidFargateSettings(
                f"{self.name} - The containers CPU ({containers_cpu}) exceeds the task CPU ({self.cpu})"
            )
        reserved_memory = 0
        for container in containers:
            if container.memory and container.memory > self.memory:
                raise InvalidFargateSettings(
                    f"{self.name}.{container.name} - Memory {container.memory} exceeds the task memory {self.memory}"
                )
            if (
                container.memory
                and container.memory_reservation
                and container.memory_reservation > container.memory
            ):
                raise InvalidFargateSettings(
                    f"{self.name}.{container.name} - memory_reservation must be lower than memory"
                )
            reserved_memory += (
                container.memory_reservation
                if container.memory_reservation
                else (container.memory if container.memory else 0)
            )
        if reserved_memory > self.memory:
            raise InvalidFargateSettings(
                f"{self.name} - The containers reserved memory ({reserved_memory}) exceeds the task memory ({self.memory})"
            )

    def validate_volumes(self) -> None:
        """
        Validates that the containers mount points refer to defined volumes
        """
        volumes_names = [volume["name"] for volume in self.volumes]
        if len(volumes_names) != len(set(volumes_names)):
            raise IncompatibleOptions("Volumes names must be unique", volumes_names)
        for container in self.containers.values():
            for mount_point in set_else_none(
                "mount_points", container.definition, []
            ):
                if mount_point["source_volume"] not in volumes_names:
                    raise InvalidContainerReference(
                        f"{container.name} - Volume {mount_point['source_volume']} is not defined. Defined",
                        volumes_names,
                    )

    def set_load_balanced_container(self) -> None:
        """
        Identifies the container and port the load balancer sends traffic to.
        Defaults to the first container with port mappings and its first port.
        """
        container_name = set_else_none("container_name", self.load_balancer)
        if container_name:
            if container_name not in self.containers:
                raise InvalidContainerReference(
                    f"load_balancer.container_name {container_name} is not defined. Defined",
                    list(self.containers.keys()),
                )
            container = self.containers[container_name]
        else:
            for container in self.containers.values():
                if container.port_mappings:
                    break
            else:
                raise InvalidContainerReference(
                    "None of the containers defines port_mappings to send load balancer traffic to"
                )
        container_port = set_else_none("container_port", self.load_balancer)
        if container_port:
            mapping = container.get_port_mapping(container_port)
        elif container.port_mappings:
            mapping = container.port_mappings[0]
        else:
            raise InvalidContainerReference(
                f"Container {container.name} has no port_mappings for the load balancer"
            )
        if mapping["protocol"] != "tcp":
            raise IncompatibleOptions(
                f"{container.name} - Port {mapping['container_port']} must be tcp for the load balancer"
            )
        self.lb_container = container
        self.lb_container_port = mapping["container_port"]
        LOG.info(
            f"{self.name} - Load balancer traffic goes to {container.name}:{self.lb_container_port}"
        )
