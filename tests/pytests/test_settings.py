#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Module to test the loading, interpolation and validation of the service configuration.
"""

from os import path

import boto3
import yaml

try:
    from yaml import CLoader as Loader
except ImportError:
    from yaml import Loader

from jsonschema import ValidationError
from pytest import fixture, raises

from ecs_fargate_service.common.settings import (
    ServiceSettings,
    load_config_files,
    merge_definitions,
)
from ecs_fargate_service.specs import load_service_spec, validate_service_definition

HERE = path.abspath(path.dirname(__file__))


@fixture(autouse=True)
def env_setup(monkeypatch):
    monkeypatch.setenv("AWS_DEFAULT_REGION", "eu-west-1")
    monkeypatch.delenv("STAGE", raising=False)
    monkeypatch.delenv("IMAGE_TAG", raising=False)


@fixture
def session():
    return boto3.session.Session(region_name="eu-west-1")


def get_content(file_name: str) -> dict:
    with open(f"{HERE}/../../use-cases/{file_name}") as config_fd:
        return yaml.load(config_fd.read(), Loader=Loader)


def test_merge_definitions():
    base = {"name": "a", "containers": {"app": {"image": "a", "cpu": 128}}, "tags": {"x": "1"}}
    override = {"containers": {"app": {"image": "b"}}, "tags": {"y": "2"}, "desired_count": 2}
    merged = merge_definitions(base, override)
    assert merged["containers"]["app"] == {"image": "b", "cpu": 128}
    assert merged["tags"] == {"x": "1", "y": "2"}
    assert merged["desired_count"] == 2
    assert base["containers"]["app"]["image"] == "a"


def test_load_config_files_merged():
    content = load_config_files(
        [f"{HERE}/../../use-cases/simple.yml", f"{HERE}/../../use-cases/overrides.yml"]
    )
    assert content["name"] == "simple-nginx"
    assert content["desired_count"] == 3
    assert content["containers"]["nginx"]["image"] == "public.ecr.aws/nginx/nginx:latest"
    assert content["containers"]["nginx"]["environment"] == {"STAGE": "${STAGE:-dev}"}


def test_settings_from_files(session, monkeypatch):
    monkeypatch.setenv("STAGE", "prod")
    settings = ServiceSettings(
        session=session,
        **{
            ServiceSettings.command_arg: ServiceSettings.render_arg,
            ServiceSettings.input_file_arg: [
                f"{HERE}/../../use-cases/simple.yml",
                f"{HERE}/../../use-cases/overrides.yml",
            ],
            ServiceSettings.format_arg: "yaml",
            ServiceSettings.output_dir_arg: "/tmp/ecs-fargate-service-tests",
        },
    )
    assert settings.name == "simple-nginx"
    assert settings.content["containers"]["nginx"]["environment"] == {"STAGE": "prod"}
    assert settings.format == "yaml"
    assert settings.output_dir == "/tmp/ecs-fargate-service-tests"
    assert not settings.upload
    assert not settings.validate
    assert not settings.deploy


def test_settings_commands(session):
    content = get_content("simple.yml")
    settings = ServiceSettings(
        content=content,
        session=session,
        **{
            ServiceSettings.command_arg: ServiceSettings.deploy_arg,
            ServiceSettings.name_arg: "my-stack",
            ServiceSettings.format_arg: "not-a-format",
        },
    )
    assert settings.name == "my-stack"
    assert settings.deploy and settings.upload and settings.validate
    assert settings.format == ServiceSettings.default_format

    settings = ServiceSettings(
        content=content,
        session=session,
        **{ServiceSettings.command_arg: ServiceSettings.plan_arg},
    )
    assert settings.plan and settings.upload and not settings.deploy

    with raises(ValueError):
        ServiceSettings(
            content=content, session=session, **{ServiceSettings.command_arg: "destroy"}
        )


def test_settings_without_content(session):
    with raises(ValueError):
        ServiceSettings(
            session=session, **{ServiceSettings.command_arg: ServiceSettings.render_arg}
        )


def test_schema_validation():
    spec = load_service_spec()
    assert spec["title"] == "ECS Fargate service definition"
    for use_case in ["simple.yml", "full.yml", "no_log_router.yml"]:
        validate_service_definition(get_content(use_case))

    content = get_content("simple.yml")
    del content["network"]
    with raises(ValidationError):
        validate_service_definition(content)

    content = get_content("simple.yml")
    content["containers"]["nginx"]["unknown_setting"] = True
    with raises(ValidationError):
        validate_service_definition(content)

    content = get_content("simple.yml")
    content["containers"]["nginx"]["depends_on"] = {"other": "RUNNING"}
    with raises(ValidationError):
        validate_service_definition(content)

    content = get_content("simple.yml")
    content["logging"] = {"retention_in_days": 42}
    with raises(ValidationError):
        validate_service_definition(content)
