#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
IAM helpers shared by the task and execution roles.
"""

import re

from troposphere import Join, Ref, Sub
from troposphere.iam import Role

from ecs_fargate_service.common.logging import LOG

ECS_TASK_EXECUTION_POLICY = "service-role/AmazonECSTaskExecutionRolePolicy"
SECRETS_MANAGER_ARN_RE = re.compile(
    r"^(?P<arn>arn:aws(?:-[a-z]+)*:secretsmanager:[a-z0-9-]+:\d{12}:secret:[^:]+)(?::.*)?$"
)
SSM_PARAMETER_ARN_RE = re.compile(
    r"^arn:aws(?:-[a-z]+)*:ssm:[a-z0-9-]+:\d{12}:parameter/[\S]+$"
)


def service_role_trust_policy(service_name: str) -> dict:
    """
    Simple function to format the trust relationship for a Role and an AWS Service

    :param str service_name: name of the AWS service, i.e. ecs-tasks
    :return: policy document
    :rtype: dict
    """
    statement = {
        "Effect": "Allow",
        "Principal": {"Service": [Sub(f"{service_name}.${{AWS::URLSuffix}}")]},
        "Action": ["sts:AssumeRole"],
    }
    return {"Version": "2012-10-17", "Statement": [statement]}


def define_iam_policy(policy: str):
    """
    From input, determines if the policy string is the full ARN or just the name of the policy.
    If just the name, assumes it is from the account itself, and adds the necessary ARN prefix.

    :param str policy:
    :return: the policy
    :rtype: str or troposphere.Sub
    """
    policy_def = policy
    policy_re = re.compile(
        r"((^([a-zA-Z0-9-_./]+)$)|(^(arn:aws(?:-[a-z]+)*:iam::(aws|\d{12}):policy/)[a-zA-Z0-9-_./]+$))"
    )
    if isinstance(policy, (Sub, Ref, Join)):
        LOG.debug(f"policy {policy}")
        return policy_def
    if not policy_re.match(policy):
        raise ValueError(
            f"policy name {policy} does not match expected regexp",
            policy_re.pattern,
        )
    if not policy.startswith("arn:"):
        policy_def = Sub(
            f"arn:${{AWS::Partition}}:iam::${{AWS::AccountId}}:policy/{policy}"
        )
    return policy_def


def aws_managed_policy(policy_name: str) -> Sub:
    return Sub(f"arn:${{AWS::Partition}}:iam::aws:policy/{policy_name}")


def add_role_boundaries(iam_role: Role, policy) -> None:
    """
    Function to set permission boundary onto an IAM role

    :param troposphere.iam.Role iam_role: the IAM Role to add the boundary to
    :param str policy: the name or ARN of the policy
    """
    if not isinstance(iam_role, Role):
        raise TypeError(f"{iam_role} is of type", type(iam_role), "expected", Role)
    if isinstance(policy, str):
        policy = define_iam_policy(policy)
    if hasattr(iam_role, "PermissionsBoundary"):
        LOG.warning(
            f"IAM Role {iam_role.title} already has PermissionsBoundary set. Overriding"
        )
    setattr(iam_role, "PermissionsBoundary", policy)


def secret_resource_arn(value_from: str):
    """
    Identifies the resource to grant access to from the secret valueFrom.

    * Secrets Manager ARNs lose the JSON key, version stage and version ID suffix
    * SSM parameter ARNs are used as-is
    * Other values are SSM parameter names in the same account and region

    :return: the service (secretsmanager or ssm) and the resource ARN
    :rtype: tuple
    """
    secrets_arn = SECRETS_MANAGER_ARN_RE.match(value_from)
    if secrets_arn:
        return "secretsmanager", secrets_arn.group("arn")
    if SSM_PARAMETER_ARN_RE.match(value_from):
        return "ssm", value_from
    if value_from.startswith("arn:"):
        raise ValueError(
            f"Secret {value_from} is neither a Secrets Manager secret nor a SSM parameter ARN"
        )
    return "ssm", Sub(
        "arn:${AWS::Partition}:ssm:${AWS::Region}:${AWS::AccountId}:"
        f"parameter/{value_from.lstrip('/')}"
    )


def group_secrets_arns(values_from: list) -> dict:
    """
    Groups the secrets resources per service, without duplicates.

    :param list[str] values_from:
    :return: the resources ARNs for each service
    :rtype: dict
    """
    grouped = {"secretsmanager": [], "ssm": []}
    seen = set()
    for value_from in values_from:
        if value_from in seen:
            continue
        seen.add(value_from)
        service, arn = secret_resource_arn(value_from)
        if isinstance(arn, str) and arn in grouped[service]:
            continue
        grouped[service].append(arn)
    return grouped
