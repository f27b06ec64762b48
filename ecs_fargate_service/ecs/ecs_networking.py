#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Security group of the service tasks and its ingress rules.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_fargate_service.ecs.service_definition import ServiceDefinition

from compose_x_common.compose_x_common import keyisset, set_else_none
from troposphere import GetAtt, Sub, Tags, Template
from troposphere.ec2 import SecurityGroup, SecurityGroupIngress, SecurityGroupRule
from troposphere.ecs import AwsvpcConfiguration, NetworkConfiguration

from ecs_fargate_service.common import NONALPHANUM, add_resource
from ecs_fargate_service.ecs.ecs_params import SG_T


def define_ingress_rule(service: ServiceDefinition, rule: dict, title: str):
    props = {
        "GroupId": GetAtt(SG_T, "GroupId"),
        "IpProtocol": set_else_none("protocol", rule, "tcp"),
        "FromPort": rule["port"],
        "ToPort": rule["port"],
        "Description": set_else_none(
            "description", rule, f"{service.name} ingress on {rule['port']}"
        ),
    }
    if keyisset("source_security_group_id", rule) and keyisset("cidr", rule):
        raise ValueError(
            f"{service.name} - ingress rule for {rule['port']} cannot set both cidr and source_security_group_id"
        )
    elif keyisset("source_security_group_id", rule):
        props["SourceSecurityGroupId"] = rule["source_security_group_id"]
    elif keyisset("cidr", rule):
        props["CidrIp"] = rule["cidr"]
    else:
        raise KeyError(
            f"{service.name} - ingress rule for {rule['port']} must set cidr or source_security_group_id"
        )
    return SecurityGroupIngress(title, **props)


def add_service_security_group(
    service: ServiceDefinition, template: Template
) -> SecurityGroup:
    """
    Creates the security group of the service tasks, with the ingress from the load balancer
    to the load balanced container port, and the ingress rules defined in network.ingress
    """
    security_group = add_resource(
        template,
        SecurityGroup(
            SG_T,
            GroupDescription=Sub(f"{service.name} tasks in ${{AWS::StackName}}"),
            VpcId=service.network["vpc_id"],
            SecurityGroupEgress=[
                SecurityGroupRule(
                    IpProtocol="-1",
                    CidrIp="0.0.0.0/0",
                    Description="Allow all outbound traffic",
                )
            ],
            Tags=Tags(**{"Name": service.name, **service.tags}),
        ),
    )
    if service.load_balancer and keyisset("security_group_id", service.load_balancer):
        add_resource(
            template,
            define_ingress_rule(
                service,
                {
                    "port": service.lb_container_port,
                    "source_security_group_id": service.load_balancer[
                        "security_group_id"
                    ],
                    "description": f"From load balancer to {service.lb_container.name}",
                },
                f"FromLoadBalancerTo{service.lb_container_port}",
            ),
        )
    for count, rule in enumerate(set_else_none("ingress", service.network, [])):
        add_resource(
            template,
            define_ingress_rule(
                service,
                rule,
                f"Ingress{count}{NONALPHANUM.sub('', str(rule['port']))}",
            ),
        )
    return security_group


def define_network_configuration(
    service: ServiceDefinition, security_group: SecurityGroup
) -> NetworkConfiguration:
    security_groups = [GetAtt(security_group, "GroupId")] + set_else_none(
        "security_groups", service.network, []
    )
    return NetworkConfiguration(
        AwsvpcConfiguration=AwsvpcConfiguration(
            AssignPublicIp="ENABLED"
            if set_else_none("assign_public_ip", service.network, False, True)
            else "DISABLED",
            SecurityGroups=security_groups,
            Subnets=service.network["subnets"],
        )
    )

