#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Module for the ServiceSettings class
"""

from __future__ import annotations

from copy import deepcopy
from datetime import datetime as dt

import boto3
import yaml

try:
    from yaml import CSafeLoader as Loader
except ImportError:
    from yaml import SafeLoader as Loader

from compose_x_common.aws import get_account_id, validate_iam_role_arn
from compose_x_common.compose_x_common import keyisset, set_else_none

from ecs_fargate_service.common.aws import get_cross_role_session
from ecs_fargate_service.common.envsubst import interpolate_content
from ecs_fargate_service.common.logging import LOG
from ecs_fargate_service.specs import validate_service_definition


def merge_definitions(base: dict, override: dict) -> dict:
    """
    Merges two configuration content. Maps are merged recursively, any other value from override wins.

    :param dict base:
    :param dict override:
    :return: the merged content
    :rtype: dict
    """
    merged = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_definitions(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def load_config_files(files: list) -> dict:
    """
    Loads the YAML configuration files and merges them in the order given.
    """
    content = {}
    for file_path in files:
        with open(file_path, "r") as config_fd:
            file_content = yaml.load(config_fd.read(), Loader=Loader)
        if not isinstance(file_content, dict):
            raise TypeError(
                f"{file_path} content must be a mapping. Got", type(file_content)
            )
        LOG.debug(f"Loaded {file_path}")
        content = merge_definitions(content, file_content)
    return content


class ServiceSettings:
    """
    Class to handle the settings to use for ECS Fargate Service.

    :ivar dict content: the interpolated and validated service configuration
    :ivar boto3.session.Session session: session to use for the API calls to AWS
    """

    name_arg = "Name"
    command_arg = "command"
    region_arg = "RegionName"
    arn_arg = "RoleArn"
    bucket_arg = "BucketName"
    input_file_arg = "ConfigFiles"
    output_dir_arg = "OutputDirectory"
    format_arg = "TemplateFormat"
    validate_arg = "ValidateTemplates"
    rollback_arg = "DisableRollback"

    deploy_arg = "up"
    render_arg = "render"
    create_arg = "create"
    plan_arg = "plan"
    config_render_arg = "config"
    containers_arg = "containers"

    default_format = "json"
    allowed_formats = ["json", "yaml", "text"]
    default_output_dir = f"/tmp/{dt.utcnow().strftime('%s')}"

    active_commands = [
        {
            "name": deploy_arg,
            "help": "Generates & Validates the CFN templates, Creates/Updates stack in CFN",
        },
        {
            "name": render_arg,
            "help": "Generates the CFN templates locally. No upload to S3",
        },
        {
            "name": create_arg,
            "help": "Generates & Validates the CFN templates locally. Uploads files to S3",
        },
        {
            "name": plan_arg,
            "help": "Creates a recursive change-set to show the diff prior to an update",
        },
    ]
    validation_commands = [
        {
            "name": config_render_arg,
            "help": "Merges and interpolates the configuration files and prints the final content",
        },
        {
            "name": containers_arg,
            "help": "Prints the container definitions as expected by the ECS RegisterTaskDefinition API",
        },
    ]
    neutral_commands = [
        {"name": "version", "help": "ECS Fargate Service version"},
    ]
    all_commands = active_commands + validation_commands + neutral_commands

    def __init__(self, content: dict = None, profile_name=None, session=None, **kwargs):
        """
        :param dict content: configuration content, used instead of the files when set.
        :param str profile_name: Name of a profile configured in .aws/config
        :param boto3.session.Session session: override the session to use for API calls.
        :param kwargs: CLI arguments
        """
        self.session = session if session else boto3.session.Session()
        self.override_session(session, profile_name, kwargs)
        self.region = set_else_none(self.region_arg, kwargs, self.session.region_name)
        self.command = set_else_none(self.command_arg, kwargs, self.render_arg)
        self.deploy = False
        self.plan = False
        self.upload = False
        self.validate = keyisset(self.validate_arg, kwargs)
        self.disable_rollback = keyisset(self.rollback_arg, kwargs)
        self.bucket_name = set_else_none(self.bucket_arg, kwargs)
        self.parse_command(kwargs)
        self.set_output_settings(kwargs)
        self.content = None
        self.set_content(kwargs, content)
        self.name = set_else_none(self.name_arg, kwargs, self.content["name"])

    def __repr__(self):
        return f"{self.name} - {self.command}"

    def parse_command(self, kwargs) -> None:
        """
        Method to analyze the command and set execution settings accordingly.
        """
        command_names = [cmd["name"] for cmd in self.all_commands]
        if self.command not in command_names:
            raise ValueError(
                f"Command {self.command} is invalid. Must be one of", command_names
            )
        if self.command == self.deploy_arg:
            self.deploy = True
            self.upload = True
            self.validate = True
        elif self.command == self.plan_arg:
            self.plan = True
            self.upload = True
            self.validate = True
        elif self.command == self.create_arg:
            self.upload = True
            self.validate = True

    def set_content(self, kwargs: dict, content: dict = None) -> None:
        """
        Method to load, interpolate and validate the service configuration

        :param dict kwargs:
        :param dict content:
        """
        if content is None:
            files = set_else_none(self.input_file_arg, kwargs, [])
            if not files:
                raise ValueError("No configuration file nor content was provided")
            LOG.debug(f"Input files: {files}")
            content = load_config_files(files)
        self.content = interpolate_content(content)
        validate_service_definition(self.content)

    def override_session(self, session, profile_name, kwargs) -> None:
        """
        Method to set the session based on input params

        :param boto3.session.Session session: The session to override the API calls with
        :param str profile_name: Name of a profile configured in .aws/config
        :param dict kwargs: CLI kwargs
        """
        region = set_else_none(self.region_arg, kwargs)
        if profile_name and not session:
            self.session = boto3.session.Session(
                profile_name=profile_name, region_name=region
            )
        elif region and not session:
            self.session = boto3.session.Session(region_name=region)
        if keyisset(self.arn_arg, kwargs):
            validate_iam_role_arn(arn=kwargs[self.arn_arg])
            self.session = get_cross_role_session(
                self.session,
                kwargs[self.arn_arg],
                region_name=region,
                session_name=f"EcsFargateService@{set_else_none(self.command_arg, kwargs, 'render')}",
            )

    def set_output_settings(self, kwargs) -> None:
        """
        Method to set the output settings based on kwargs
        """
        self.format = self.default_format
        if (
            keyisset(self.format_arg, kwargs)
            and kwargs[self.format_arg] in self.allowed_formats
        ):
            self.format = kwargs[self.format_arg]

        self.output_dir = set_else_none(
            self.output_dir_arg, kwargs, self.default_output_dir
        )

    def set_bucket_name_from_account_id(self) -> None:
        """
        Sets the default bucket name to upload the templates to when none was set and the templates are uploaded.
        """
        if self.bucket_name or not self.upload:
            return
        account_id = get_account_id(self.session)
        self.bucket_name = f"ecs-fargate-service-{account_id}-{self.session.region_name}"
        LOG.info(f"No bucket name defined. Using {self.bucket_name}")
