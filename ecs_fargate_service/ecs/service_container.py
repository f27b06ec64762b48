#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Module to represent a container of the task definition, as defined in the service configuration.
"""

from __future__ import annotations

import shlex
from copy import deepcopy

from compose_x_common.compose_x_common import keyisset, keypresent, set_else_none

from ecs_fargate_service.common.logging import LOG
from ecs_fargate_service.ecs import ecs_params
from ecs_fargate_service.exceptions import (
    IncompatibleOptions,
    InvalidContainerReference,
    InvalidFargateSettings,
)


def set_environment_dict_from_list(environment: list) -> dict:
    """
    Transforms the list of name/value pairs into a dict
    """
    _environment: dict = {}
    for _env in environment:
        _environment[_env["name"]] = _env["value"]
    return _environment


def format_env_value(value) -> str:
    """
    Environment values are strings in the container definitions. Booleans are lowered as YAML would render them.
    """
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def import_command(command) -> list:
    """
    Commands given as a string are split the same way a shell would.
    """
    if isinstance(command, str):
        return shlex.split(command)
    return list(command)


class ServiceContainer:
    """
    Class to represent one of the containers of the task definition

    :ivar str name: name of the container
    :ivar dict definition: the container configuration
    :ivar list depends_on: list of (container_name, condition) the container depends on
    """

    def __init__(self, name: str, definition: dict):
        self.name = name
        self.definition = deepcopy(definition)
        if not keyisset("image", self.definition):
            raise KeyError("You must specify the image to use for", self.name)
        self.image = self.definition["image"]
        self.essential = set_else_none("essential", self.definition, True, True)
        self.cpu = set_else_none("cpu", self.definition, None, True)
        self.memory = set_else_none("memory", self.definition)
        self.memory_reservation = set_else_none("memory_reservation", self.definition)
        self.health_check = set_else_none("health_check", self.definition)
        self.log_configuration = set_else_none("log_configuration", self.definition)
        self.firelens_options = set_else_none("firelens_options", self.definition, {})
        self.command = (
            import_command(self.definition["command"])
            if keypresent("command", self.definition)
            else None
        )
        self.entrypoint = (
            import_command(self.definition["entrypoint"])
            if keypresent("entrypoint", self.definition)
            else None
        )
        environment = set_else_none("environment", self.definition, {})
        if isinstance(environment, list):
            environment = set_environment_dict_from_list(environment)
        self.environment = {
            key: format_env_value(value) for key, value in environment.items()
        }
        self.secrets = set_else_none("secrets", self.definition, {})
        duplicates = set(self.environment.keys()) & set(self.secrets.keys())
        if duplicates:
            raise IncompatibleOptions(
                f"{self.name} - Variables cannot be both environment and secrets",
                sorted(duplicates),
            )
        self.port_mappings = self.import_port_mappings()
        self.depends_on = self.import_depends_on()

    def __repr__(self):
        return self.name

    def import_port_mappings(self) -> list:
        """
        Sets the default protocol and host port. With awsvpc network mode the host port must be the container port.
        """
        mappings = []
        for port in set_else_none("port_mappings", self.definition, []):
            container_port = port["container_port"]
            host_port = set_else_none("host_port", port, container_port)
            if host_port != container_port:
                raise InvalidFargateSettings(
                    f"{self.name} - host_port {host_port} must be equal to container_port {container_port}"
                )
            mapping = {
                "container_port": container_port,
                "host_port": host_port,
                "protocol": set_else_none("protocol", port, "tcp"),
            }
            for key in ("name", "app_protocol"):
                if keyisset(key, port):
                    mapping[key] = port[key]
            mappings.append(mapping)
        return mappings

    def import_depends_on(self) -> list:
        """
        Normalizes the depends_on definition, given as a mapping or a list, into (container, condition) tuples
        """
        depends_on = set_else_none("depends_on", self.definition, [])
        if isinstance(depends_on, dict):
            dependencies = [
                (container_name, condition)
                for container_name, condition in depends_on.items()
            ]
        else:
            dependencies = [
                (
                    dependency["container_name"],
                    set_else_none("condition", dependency, "START"),
                )
                for dependency in depends_on
            ]
        for container_name, condition in dependencies:
            if container_name == self.name:
                raise InvalidContainerReference(
                    f"Container {self.name} cannot depend on itself"
                )
            if condition not in ecs_params.DEPENDENCY_CONDITIONS:
                raise ValueError(
                    f"{self.name} - Condition {condition} for {container_name} is invalid. Must be one of",
                    ecs_params.DEPENDENCY_CONDITIONS,
                )
        return dependencies

    @property
    def dependencies_names(self) -> list:
        return [dependency[0] for dependency in self.depends_on]

    def add_dependency(self, container_name: str, condition: str = "START") -> None:
        if container_name not in self.dependencies_names:
            self.depends_on.append((container_name, condition))
            LOG.debug(f"{self.name} - Added {container_name} as {condition} dependency")

    def get_port_mapping(self, port) -> dict:
        """
        Finds the port mapping from its container port or its name

        :param int|str port:
        :raises: InvalidContainerReference if no mapping matches
        """
        for mapping in self.port_mappings:
            if isinstance(port, int) and mapping["container_port"] == port:
                return mapping
            elif isinstance(port, str) and set_else_none("name", mapping) == port:
                return mapping
        raise InvalidContainerReference(
            f"Container {self.name} has no port mapping for {port}. Defined",
            [
                (mapping["container_port"], set_else_none("name", mapping))
                for mapping in self.port_mappings
            ],
        )


