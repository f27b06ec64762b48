#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Load the JSON Schema specification of the service configuration
"""

from json import loads

import jsonschema
from importlib_resources import files as pkg_files

from ecs_fargate_service.common.logging import LOG

SERVICE_SPEC_FILE = "service.spec.json"


def load_service_spec() -> dict:
    source = pkg_files("ecs_fargate_service").joinpath(f"specs/{SERVICE_SPEC_FILE}")
    return loads(source.read_text())


def validate_service_definition(definition: dict) -> None:
    """
    Validates the service configuration against the JSON schema.

    :raises: jsonschema.exceptions.ValidationError
    """
    LOG.debug(f"Validating against input schema {SERVICE_SPEC_FILE}")
    jsonschema.validate(definition, load_service_spec())
