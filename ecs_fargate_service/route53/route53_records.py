#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Route53 records pointing to the service, either through the load balancer or with plain values.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_fargate_service.ecs.service_definition import ServiceDefinition

from compose_x_common.compose_x_common import keyisset, set_else_none
from troposphere import Output, Ref, Template
from troposphere.route53 import AliasTarget, RecordSetType

from ecs_fargate_service.common import NONALPHANUM, add_resource
from ecs_fargate_service.common.logging import LOG
from ecs_fargate_service.exceptions import IncompatibleOptions

DEFAULT_RECORD_TYPE = "A"
DEFAULT_TTL = 300
ALIAS_TYPES = ["A", "AAAA"]


def record_title(record: dict) -> str:
    """
    Logical ID of the record, from its name and type. The wildcard label is kept as Wildcard.
    """
    record_type = set_else_none("type", record, DEFAULT_RECORD_TYPE)
    name = record["name"].replace("*", "wildcard")
    return f"{NONALPHANUM.sub('', name.title())}{record_type}"[:128]


def define_alias_target(service: ServiceDefinition, record: dict) -> AliasTarget:
    """
    Alias defined for the record, or the service load balancer.

    :raises: IncompatibleOptions if the load balancer DNS settings are missing
    """
    if keyisset("alias", record):
        alias = record["alias"]
        return AliasTarget(
            DNSName=alias["dns_name"],
            HostedZoneId=alias["hosted_zone_id"],
            EvaluateTargetHealth=set_else_none(
                "evaluate_target_health", alias, False, True
            ),
        )
    if (
        not service.load_balancer
        or not keyisset("dns_name", service.load_balancer)
        or not keyisset("hosted_zone_id", service.load_balancer)
    ):
        raise IncompatibleOptions(
            f"{service.name} - DNS record {record['name']} has no values nor alias."
            " load_balancer.dns_name and load_balancer.hosted_zone_id are required to alias the load balancer"
        )
    return AliasTarget(
        DNSName=service.load_balancer["dns_name"],
        HostedZoneId=service.load_balancer["hosted_zone_id"],
        EvaluateTargetHealth=True,
    )


def format_record_values(record_type: str, values: list) -> list:
    if record_type != "TXT":
        return values
    return [
        value if value.startswith('"') and value.endswith('"') else f'"{value}"'
        for value in values
    ]


def define_record(service: ServiceDefinition, record: dict) -> RecordSetType:
    record_type = set_else_none("type", record, DEFAULT_RECORD_TYPE)
    props = {
        "HostedZoneId": service.dns["hosted_zone_id"],
        "Name": record["name"],
        "Type": record_type,
    }
    if keyisset("alias", record) and keyisset("values", record):
        raise IncompatibleOptions(
            f"{service.name} - DNS record {record['name']}: alias and values are mutually exclusive"
        )
    if keyisset("values", record):
        props["ResourceRecords"] = format_record_values(record_type, record["values"])
        props["TTL"] = str(set_else_none("ttl", record, DEFAULT_TTL, True))
    elif record_type in ALIAS_TYPES:
        props["AliasTarget"] = define_alias_target(service, record)
    else:
        raise IncompatibleOptions(
            f"{service.name} - DNS record {record['name']} of type {record_type} requires values"
        )
    return RecordSetType(record_title(record), **props)


def add_dns_records(service: ServiceDefinition, template: Template) -> list:
    """
    Creates the DNS records of the service and their Fqdn outputs.

    :return: the outputs, one per record
    :rtype: list[troposphere.Output]
    """
    outputs = []
    if not service.dns:
        return outputs
    for record in service.dns["records"]:
        cfn_record = define_record(service, record)
        if cfn_record.title in template.resources:
            raise IncompatibleOptions(
                f"{service.name} - DNS record {record['name']} is defined more than once"
            )
        add_resource(template, cfn_record)
        LOG.info(f"{service.name} - DNS record {record['name']} ({cfn_record.Type})")
        outputs.append(Output(f"{cfn_record.title}Fqdn", Value=Ref(cfn_record)))
    return outputs
