#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
IAM Stack that creates the Task and Execution roles of the service.
Using that as a nested stack ensures the IAM roles creation is successful
before moving on to creating the task definition and the service.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_fargate_service.ecs.service_definition import ServiceDefinition

from compose_x_common.compose_x_common import keyisset, set_else_none
from troposphere import GetAtt, Output, Ref, Sub, Template
from troposphere.iam import Policy, PolicyType, Role

from ecs_fargate_service.common import add_outputs, add_resource, build_template
from ecs_fargate_service.common.cfn_params import (
    LOG_GROUP_NAME,
    LOG_GROUP_NAME_T,
    SERVICE_NAME,
    SERVICE_NAME_T,
)
from ecs_fargate_service.common.logging import LOG
from ecs_fargate_service.common.stacks import ServiceStack
from ecs_fargate_service.ecs.ecs_params import EXEC_ROLE_T, IAM_STACK_T, TASK_ROLE_T
from ecs_fargate_service.ecs.task_logging import log_group_arn
from ecs_fargate_service.iam import (
    ECS_TASK_EXECUTION_POLICY,
    add_role_boundaries,
    aws_managed_policy,
    define_iam_policy,
    group_secrets_arns,
    service_role_trust_policy,
)

EXEC_COMMAND_POLICY_T = "EnableEcsExecuteCommand"
SECRETS_ACTIONS = {
    "secretsmanager": ["secretsmanager:GetSecretValue"],
    "ssm": ["ssm:GetParameters", "ssm:GetParameter"],
}


def define_user_policies(role_settings: dict) -> list:
    return [
        Policy(
            PolicyName=policy["name"],
            PolicyDocument={"Version": "2012-10-17", "Statement": policy["statements"]},
        )
        for policy in set_else_none("policies", role_settings, [])
    ]


def define_role(
    title: str,
    service: ServiceDefinition,
    role_settings: dict,
    managed_policies: list = None,
    policies: list = None,
) -> Role:
    """
    Defines an IAM role ECS tasks can assume, with the user policies and managed policies
    """
    managed_policies = list(managed_policies) if managed_policies else []
    managed_policies += [
        define_iam_policy(policy)
        for policy in set_else_none("managed_policy_arns", role_settings, [])
    ]
    policies = list(policies) if policies else []
    policies += define_user_policies(role_settings)
    props = {
        "AssumeRolePolicyDocument": service_role_trust_policy("ecs-tasks"),
        "Path": set_else_none("path", service.iam, "/"),
        "Description": Sub(
            f"{title} for ECS Service ${{{SERVICE_NAME_T}}} in ${{AWS::StackName}}"
        ),
    }
    if managed_policies:
        props["ManagedPolicyArns"] = managed_policies
    if policies:
        props["Policies"] = policies
    role = Role(title, **props)
    if keyisset("permissions_boundary", role_settings):
        add_role_boundaries(role, role_settings["permissions_boundary"])
    return role


def secrets_access_statements(service: ServiceDefinition) -> list:
    """
    Statements granting read access to the secrets the containers retrieve at startup
    and to the private registries credentials.
    """
    values_from = []
    for container in service.all_containers:
        values_from += list(container.secrets.values())
        if keyisset("repository_credentials", container.definition):
            values_from.append(container.definition["repository_credentials"])
    statements = []
    for resource_type, resources in group_secrets_arns(values_from).items():
        if not resources:
            continue
        statements.append(
            {
                "Sid": f"{resource_type.title()}Access",
                "Effect": "Allow",
                "Action": SECRETS_ACTIONS[resource_type],
                "Resource": resources,
            }
        )
    return statements


def add_execution_role(service: ServiceDefinition, template: Template) -> Role:
    role_settings = set_else_none("execution_role", service.iam, {})
    policies = []
    statements = secrets_access_statements(service)
    if statements:
        policies.append(
            Policy(
                PolicyName="SecretsAccess",
                PolicyDocument={"Version": "2012-10-17", "Statement": statements},
            )
        )
    return add_resource(
        template,
        define_role(
            EXEC_ROLE_T,
            service,
            role_settings,
            [aws_managed_policy(ECS_TASK_EXECUTION_POLICY)],
            policies,
        ),
    )


def add_task_role(service: ServiceDefinition, template: Template) -> Role:
    role_settings = set_else_none("task_role", service.iam, {})
    policies = []
    if service.log_router and service.log_router.ships_to_cloudwatch:
        policies.append(
            Policy(
                PolicyName="LogRouterCloudWatchAccess",
                PolicyDocument={
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Effect": "Allow",
                            "Action": [
                                "logs:CreateLogStream",
                                "logs:DescribeLogStreams",
                                "logs:PutLogEvents",
                            ],
                            "Resource": log_group_arn(f"${{{LOG_GROUP_NAME_T}}}"),
                        }
                    ],
                },
            )
        )
    return add_resource(
        template, define_role(TASK_ROLE_T, service, role_settings, policies=policies)
    )


def apply_ecs_execute_command_permissions(
    template: Template, task_role: Role
) -> PolicyType:
    """
    Set the IAM Policies in place to allow ECS Execute Command with SSM
    """
    return add_resource(
        template,
        PolicyType(
            EXEC_COMMAND_POLICY_T,
            PolicyName="EnableExecuteCommand",
            PolicyDocument={
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Action": [
                            "ssmmessages:CreateControlChannel",
                            "ssmmessages:CreateDataChannel",
                            "ssmmessages:OpenControlChannel",
                            "ssmmessages:OpenDataChannel",
                        ],
                        "Resource": "*",
                    }
                ],
            },
            Roles=[Ref(task_role)],
        ),
    )


class IamStack(ServiceStack):
    """
    Class to represent the IAM nested stack of the service.

    :ivar troposphere.iam.Role task_role: the task role, None when using an existing role
    :ivar troposphere.iam.Role execution_role: the execution role, None when using an existing role
    """

    def __init__(self, service: ServiceDefinition, **kwargs):
        stack_template = build_template(
            f"IAM roles for the ECS Service {service.name}",
            [SERVICE_NAME, LOG_GROUP_NAME],
        )
        self.service = service
        self.task_role = None
        self.execution_role = None
        outputs = []
        if not keyisset("arn", set_else_none("execution_role", service.iam, {})):
            self.execution_role = add_execution_role(service, stack_template)
            outputs += self.role_outputs(self.execution_role)
        if not keyisset("arn", set_else_none("task_role", service.iam, {})):
            self.task_role = add_task_role(service, stack_template)
            outputs += self.role_outputs(self.task_role)
            if service.enable_execute_command:
                apply_ecs_execute_command_permissions(stack_template, self.task_role)
        elif service.enable_execute_command:
            LOG.warning(
                f"{service.name} - ECS Exec is enabled with an existing task role."
                " The role must allow the ssmmessages actions"
            )
        add_outputs(stack_template, outputs)
        super().__init__(
            IAM_STACK_T,
            stack_template,
            stack_parameters={
                SERVICE_NAME_T: service.name,
                LOG_GROUP_NAME_T: service.log_group_name,
            },
            **kwargs,
        )

    @staticmethod
    def role_outputs(role: Role) -> list:
        return [
            Output(f"{role.title}Arn", Value=GetAtt(role, "Arn")),
            Output(f"{role.title}Name", Value=Ref(role)),
        ]

    @property
    def creates_roles(self) -> bool:
        return bool(self.task_role or self.execution_role)

    def role_arn(self, role_title: str, role_key: str):
        """
        The role ARN to use in the root stack. Either the existing role or the nested stack output.

        :param str role_title: title of the role in the nested stack
        :param str role_key: task_role or execution_role
        """
        role_settings = set_else_none(role_key, self.service.iam, {})
        if keyisset("arn", role_settings):
            return role_settings["arn"]
        return GetAtt(self, f"Outputs.{role_title}Arn")

    @property
    def task_role_arn(self):
        return self.role_arn(TASK_ROLE_T, "task_role")

    @property
    def execution_role_arn(self):
        return self.role_arn(EXEC_ROLE_T, "execution_role")
