#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Functions to create, update or plan the service stack with AWS CloudFormation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_fargate_service.common.settings import ServiceSettings
    from ecs_fargate_service.common.stacks import ServiceStack

import secrets
from string import ascii_lowercase
from time import sleep

from botocore.exceptions import ClientError
from compose_x_common.aws import get_assume_role_session
from compose_x_common.compose_x_common import keyisset
from tabulate import tabulate

from ecs_fargate_service.common.logging import LOG

CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND"]
CAN_UPDATE_STATUSES = [
    "CREATE_COMPLETE",
    "ROLLBACK_COMPLETE",
    "UPDATE_COMPLETE",
    "UPDATE_ROLLBACK_COMPLETE",
]


def get_cross_role_session(session, arn, region_name=None, session_name=None):
    """
    Function to get a session assuming the given IAM role.

    :param boto3.session.Session session: The original session fetching the credentials for the role
    :param str arn:
    :param str region_name: Name of region for session
    :param str session_name: Override name of the session
    :rtype: boto3.session.Session
    """
    if not session_name:
        session_name = "EcsFargateService@Deploy"
    try:
        return get_assume_role_session(
            session, arn, session_name=session_name, region=region_name
        )
    except ClientError:
        LOG.error(f"Failed to use the Role ARN {arn}")
        raise


def assert_can_create_stack(client, name):
    """
    Checks whether a stack already exists or not

    :return: True if the stack does not exist, the stack if it is under review, False otherwise.
    """
    try:
        stack_r = client.describe_stacks(StackName=name)
        if not keyisset("Stacks", stack_r):
            return True
        stacks = stack_r["Stacks"]
        if len(stacks) != 1:
            raise LookupError("Too many stacks found with machine name", name)
        stack = stacks[0]
        if stack["StackStatus"] == "REVIEW_IN_PROGRESS":
            return stack
        return False
    except ClientError as error:
        if (
            error.response["Error"]["Code"] == "ValidationError"
            and error.response["Error"]["Message"].find("does not exist") > 0
        ):
            return True
        raise error


def assert_can_update_stack(client, name) -> bool:
    """
    Checks whether the existing stack is in a status that allows updates
    """
    res = client.describe_stacks(StackName=name)
    if not keyisset("Stacks", res):
        return False
    stack = res["Stacks"][0]
    LOG.info(f"{name} - {stack['StackStatus']}")
    return stack["StackStatus"] in CAN_UPDATE_STATUSES


def validate_stack_availability(settings: ServiceSettings, root_stack: ServiceStack):
    """
    Function to check that the templates were uploaded and can be used by CFN
    """
    if not settings.upload:
        raise RuntimeError(
            "Templates must be uploaded to S3 in order to deploy or plan the stack."
        )
    elif not root_stack.TemplateURL.startswith("https://"):
        raise ValueError(
            f"The URL for the stack is incorrect.: {root_stack.TemplateURL}",
            "TemplateURL must be a s3 URL",
        )


def deploy(settings: ServiceSettings, root_stack: ServiceStack):
    """
    Function to deploy (create or update) the stack to CFN.

    :return: the stack ID, or None if the stack cannot be created nor updated.
    """
    validate_stack_availability(settings, root_stack)
    client = settings.session.client("cloudformation")
    if assert_can_create_stack(client, settings.name):
        res = client.create_stack(
            StackName=settings.name,
            Capabilities=CAPABILITIES,
            Parameters=root_stack.render_parameters_list_cfn(),
            TemplateURL=root_stack.TemplateURL,
            DisableRollback=settings.disable_rollback,
        )
        LOG.info(f"Stack {settings.name} successfully deployed.")
        LOG.info(res["StackId"])
        return res["StackId"]
    elif assert_can_update_stack(client, settings.name):
        LOG.warning(f"Stack {settings.name} already exists. Updating.")
        res = client.update_stack(
            StackName=settings.name,
            Capabilities=CAPABILITIES,
            Parameters=root_stack.render_parameters_list_cfn(),
            TemplateURL=root_stack.TemplateURL,
            DisableRollback=settings.disable_rollback,
        )
        LOG.info(f"Stack {settings.name} successfully updating.")
        LOG.info(res["StackId"])
        return res["StackId"]
    LOG.error(f"Stack {settings.name} can neither be created nor updated.")
    return None


def get_change_set_status(client, change_set_name, settings, wait: int = 10) -> dict:
    """
    Waits for the change set to be ready and prints out the resources changes.
    """
    pending_statuses = [
        "CREATE_PENDING",
        "CREATE_IN_PROGRESS",
        "DELETE_PENDING",
        "DELETE_IN_PROGRESS",
        "REVIEW_IN_PROGRESS",
    ]
    success_statuses = ["CREATE_COMPLETE", "DELETE_COMPLETE"]
    failed_statuses = ["DELETE_FAILED", "FAILED"]
    while True:
        status = client.describe_change_set(
            ChangeSetName=change_set_name, StackName=settings.name
        )
        if status["Status"] in failed_statuses:
            raise SystemExit("Change set is unsuccessful", status["Status"])
        if status["Status"] in success_statuses:
            break
        if status["Status"] in pending_statuses:
            LOG.info(f"ChangeSet creation in progress. Waiting {wait} seconds")
        else:
            LOG.warning(f"ChangeSet status {status['Status']} is unknown. Waiting")
        sleep(wait)

    print(
        tabulate(
            [
                [
                    change["ResourceChange"]["LogicalResourceId"],
                    change["ResourceChange"]["ResourceType"],
                    change["ResourceChange"]["Action"],
                ]
                for change in status["Changes"]
            ],
            ["LogicalResourceId", "ResourceType", "Action"],
            tablefmt="rst",
        )
    )
    return status


def plan(settings: ServiceSettings, root_stack: ServiceStack, apply: bool = None):
    """
    Function to create a recursive change-set and return diffs

    :param bool apply: apply the change set without prompting. Prompts when None.
    """
    validate_stack_availability(settings, root_stack)
    client = settings.session.client("cloudformation")
    change_set_name = f"{settings.name}" + "".join(
        secrets.choice(ascii_lowercase) for _ in range(10)
    )
    if assert_can_create_stack(client, settings.name):
        change_set_type = "CREATE"
    elif assert_can_update_stack(client, settings.name):
        change_set_type = "UPDATE"
    else:
        LOG.error(f"Stack {settings.name} is not in a status allowing changes.")
        return None
    client.create_change_set(
        StackName=settings.name,
        Capabilities=CAPABILITIES,
        Parameters=root_stack.render_parameters_list_cfn(),
        TemplateURL=root_stack.TemplateURL,
        UsePreviousTemplate=False,
        IncludeNestedStacks=True,
        ChangeSetType=change_set_type,
        ChangeSetName=change_set_name,
    )
    status = get_change_set_status(client, change_set_name, settings)
    if apply is None:
        apply = input("Want to apply? [yN]: ") in ["y", "Y", "YES", "Yes", "yes"]
    if apply:
        client.execute_change_set(
            ChangeSetName=change_set_name,
            StackName=settings.name,
            DisableRollback=settings.disable_rollback,
        )
        LOG.info(f"{settings.name} - Executing change set {change_set_name}")
    else:
        client.delete_change_set(
            ChangeSetName=change_set_name, StackName=settings.name
        )
        LOG.info(f"{settings.name} - Deleted change set {change_set_name}")
    return status
