#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Console script for ecs_fargate_service.
"""

import argparse
import json
import logging
import sys

import yaml
from cfn_flip.yaml_dumper import LongCleanDumper

from ecs_fargate_service import __version__
from ecs_fargate_service.common.aws import deploy, plan
from ecs_fargate_service.common.logging import LOG
from ecs_fargate_service.common.settings import ServiceSettings
from ecs_fargate_service.common.stacks import process_stacks
from ecs_fargate_service.ecs.api_json import container_definitions_to_api
from ecs_fargate_service.ecs.container_definitions import render_container_definitions
from ecs_fargate_service.ecs.service_definition import ServiceDefinition
from ecs_fargate_service.service_module import generate_full_template

VALID_LOG_LEVELS = [
    "FATAL",
    "CRITICAL",
    "ERROR",
    "WARNING",
    "WARN",
    "INFO",
    "DEBUG",
]


class ArgparseHelper(argparse._HelpAction):
    """
    Used to help print top level '--help' arguments from argparse
    when used with subparsers
    """

    def __call__(self, parser, namespace, values, option_string=None):
        parser.print_help()
        print()
        subparsers_actions = [
            action
            for action in parser._actions
            if isinstance(action, argparse._SubParsersAction)
        ]
        for subparsers_action in subparsers_actions:
            for choice, subparser in list(subparsers_action.choices.items()):
                if choice in [
                    cmd["name"] for cmd in ServiceSettings.active_commands
                ] or choice in [
                    cmd["name"] for cmd in ServiceSettings.validation_commands
                ]:
                    print(f"Command '{choice}'")
                    print(subparser.format_usage())
        parser.exit()


def main_parser():
    """
    Console script for ecs_fargate_service.
    """
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "-h",
        "--help",
        action=ArgparseHelper,
        help="show this help message and exit",
    )

    cmd_parsers = parser.add_subparsers(
        dest=ServiceSettings.command_arg, help="Command to execute."
    )
    logging_parser = argparse.ArgumentParser(add_help=False)
    base_command_parser = argparse.ArgumentParser(add_help=False)
    files_parser = argparse.ArgumentParser(add_help=False)
    logging_parser.add_argument(
        "--loglevel", type=str, help="Log level. Defaults to INFO", required=False
    )
    files_parser.add_argument(
        "-f",
        "--config-file",
        dest=ServiceSettings.input_file_arg,
        required=True,
        help="Path to the service configuration file. Repeat to merge files, the last one wins",
        action="append",
    )
    files_parser.add_argument(
        "--region",
        required=False,
        dest=ServiceSettings.region_arg,
        help="Specify the region you want to build for"
        " default use default region from config or environment vars",
    )
    base_command_parser.add_argument(
        "-d",
        "--output-dir",
        required=False,
        help="Output directory to write all the templates to.",
        type=str,
        dest=ServiceSettings.output_dir_arg,
        default=ServiceSettings.default_output_dir,
    )
    base_command_parser.add_argument(
        "-n",
        "--name",
        help="Name of the CloudFormation stack. Defaults to the service name",
        required=False,
        type=str,
        dest=ServiceSettings.name_arg,
    )
    base_command_parser.add_argument(
        "--format",
        help="Defines the format you want to use.",
        type=str,
        dest=ServiceSettings.format_arg,
        choices=ServiceSettings.allowed_formats,
        default=ServiceSettings.default_format,
    )
    base_command_parser.add_argument(
        "-b",
        "--bucket-name",
        type=str,
        required=False,
        help="Bucket name to upload the templates to",
        dest=ServiceSettings.bucket_arg,
    )
    base_command_parser.add_argument(
        "--role-arn",
        dest=ServiceSettings.arn_arg,
        help="Allow you to run API calls using a specific IAM role, within same or for cross-account",
        required=False,
    )
    base_command_parser.add_argument(
        "--disable-rollback",
        dest=ServiceSettings.rollback_arg,
        help="On create/plan, disable stack automatic rollback.",
        required=False,
        action="store_true",
    )
    base_command_parser.add_argument(
        "--validate",
        dest=ServiceSettings.validate_arg,
        help="With render, validates the templates with CloudFormation.",
        required=False,
        action="store_true",
    )
    for command in ServiceSettings.active_commands:
        cmd_parsers.add_parser(
            name=command["name"],
            help=command["help"],
            parents=[base_command_parser, files_parser, logging_parser],
        )
    for command in ServiceSettings.validation_commands:
        cmd_parsers.add_parser(
            name=command["name"],
            help=command["help"],
            parents=[files_parser, logging_parser],
        )
    for command in ServiceSettings.neutral_commands:
        cmd_parsers.add_parser(name=command["name"], help=command["help"])
    return parser


def set_log_level(loglevel: str) -> None:
    if loglevel.upper() in VALID_LOG_LEVELS:
        LOG.setLevel(logging.getLevelName(loglevel.upper()))
        LOG.handlers[0].setLevel(logging.getLevelName(loglevel.upper()))
    else:
        print(
            f"Log level value {loglevel} is invalid. Must me one of {VALID_LOG_LEVELS}"
        )


def print_containers(settings: ServiceSettings) -> None:
    """
    Prints the container definitions in the ECS RegisterTaskDefinition API format
    """
    service = ServiceDefinition(settings.content)
    definitions = container_definitions_to_api(
        render_container_definitions(service), settings.region
    )
    print(json.dumps(definitions, indent=2))


def main():
    """
    Main entry point for CLI
    :return: status code
    """
    parser = main_parser()
    if len(sys.argv) == 1:
        parser.print_help()
        sys.exit()
    args = parser.parse_args()
    if getattr(args, "loglevel", None):
        set_log_level(args.loglevel)
    LOG.debug(args)
    if args.command == "version":
        print("ECS Fargate Service", __version__)
        return 0
    settings = ServiceSettings(**vars(args))
    LOG.debug(settings)
    if settings.command == ServiceSettings.config_render_arg:
        print(yaml.dump(settings.content, Dumper=LongCleanDumper))
        return 0
    if settings.command == ServiceSettings.containers_arg:
        print_containers(settings)
        return 0

    settings.set_bucket_name_from_account_id()
    root_stack = generate_full_template(settings)
    process_stacks(root_stack, settings)

    if settings.deploy:
        deploy(settings, root_stack)
    elif settings.plan:
        plan(settings, root_stack)
    return 0


if __name__ == "__main__":
    sys.exit(main())  # pragma: no cover
