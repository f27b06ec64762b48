#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Log router sidecar, based on AWS FireLens, to which the service containers send their logs.
"""

from __future__ import annotations

from copy import deepcopy

from compose_x_common.compose_x_common import set_else_none
from troposphere import Region
from troposphere.ecs import FirelensConfiguration, LogConfiguration

from ecs_fargate_service.ecs import ecs_params
from ecs_fargate_service.ecs.service_container import ServiceContainer

CLOUDWATCH_OUTPUTS = ["cloudwatch_logs", "cloudwatch"]


class LogRouter:
    """
    Class to represent the log router sidecar settings.

    :ivar ServiceContainer container: the container of the log router
    :ivar str output_name: the Fluent Bit output plugin the containers logs are shipped with
    """

    def __init__(self, definition: dict):
        self.definition = deepcopy(definition)
        self.name = set_else_none("name", self.definition, ecs_params.LOG_ROUTER_NAME)
        self.firelens_type = set_else_none("firelens_type", self.definition, "fluentbit")
        self.firelens_options = set_else_none(
            "firelens_options",
            self.definition,
            deepcopy(ecs_params.LOG_ROUTER_DEFAULT_FIRELENS_OPTIONS),
            True,
        )
        output = set_else_none("output", self.definition, {})
        self.output_name = set_else_none(
            "name", output, ecs_params.LOG_ROUTER_DEFAULT_OUTPUT
        )
        self.output_options = set_else_none("options", output, {})
        container_definition = {
            "image": set_else_none(
                "image", self.definition, ecs_params.LOG_ROUTER_IMAGE
            ),
            "essential": set_else_none("essential", self.definition, True, True),
            "cpu": set_else_none("cpu", self.definition, 0, True),
            "memory_reservation": set_else_none(
                "memory_reservation",
                self.definition,
                ecs_params.LOG_ROUTER_MEMORY_RESERVATION,
            ),
            "environment": set_else_none("environment", self.definition, {}),
        }
        if set_else_none("memory", self.definition):
            container_definition["memory"] = self.definition["memory"]
        self.container = ServiceContainer(self.name, container_definition)

    def __repr__(self):
        return self.name

    @classmethod
    def from_definition(cls, definition: dict):
        """
        :return: the log router, or None if it was disabled
        :rtype: LogRouter
        """
        if not set_else_none("enabled", definition, True, True):
            return None
        return cls(definition)

    @property
    def ships_to_cloudwatch(self) -> bool:
        return self.output_name in CLOUDWATCH_OUTPUTS

    def firelens_configuration(self) -> FirelensConfiguration:
        if self.firelens_options:
            return FirelensConfiguration(
                Type=self.firelens_type, Options=dict(self.firelens_options)
            )
        return FirelensConfiguration(Type=self.firelens_type)

    def container_log_options(
        self, container: ServiceContainer, log_group_name: str
    ) -> dict:
        """
        Options of the awsfirelens log driver for the given container. The output plugin options are
        merged with the container specific options, the latter taking precedence.
        """
        options = {"Name": self.output_name}
        if self.ships_to_cloudwatch:
            options.update(
                {
                    "region": Region,
                    "log_group_name": log_group_name,
                    "log_stream_prefix": f"{container.name}/",
                    "auto_create_group": "false",
                }
            )
        options.update(self.output_options)
        options.update(container.firelens_options)
        return options

    def container_log_configuration(
        self, container: ServiceContainer, log_group_name: str
    ) -> LogConfiguration:
        return LogConfiguration(
            LogDriver="awsfirelens",
            Options=self.container_log_options(container, log_group_name),
        )
