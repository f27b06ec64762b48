#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Module to handle the ECS Service scaling with Application Auto Scaling.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_fargate_service.ecs.service_definition import ServiceDefinition

from compose_x_common.compose_x_common import keyisset, keypresent, set_else_none
from troposphere import (
    AWS_ACCOUNT_ID,
    AWS_PARTITION,
    AWS_URL_SUFFIX,
    GetAtt,
    Join,
    Ref,
    Sub,
    Template,
)
from troposphere import applicationautoscaling
from troposphere.ecs import Service
from troposphere.elasticloadbalancingv2 import TargetGroup

from ecs_fargate_service.common import add_resource
from ecs_fargate_service.common.logging import LOG
from ecs_fargate_service.ecs.ecs_params import SERVICE_SCALING_TARGET
from ecs_fargate_service.exceptions import IncompatibleOptions

DEFAULT_SCALE_IN_COOLDOWN = 300
DEFAULT_SCALE_OUT_COOLDOWN = 60

TRACKING_SETTINGS = {
    "cpu": {
        "title": "ServiceCpuTrackingPolicy",
        "policy_name": "CpuTrackingScalingPolicy",
        "property": "ECSServiceAverageCPUUtilization",
    },
    "memory": {
        "title": "ServiceMemoryTrackingPolicy",
        "policy_name": "MemoryTrackingScalingPolicy",
        "property": "ECSServiceAverageMemoryUtilization",
    },
    "alb_request_count": {
        "title": "ServiceRequestCountTrackingPolicy",
        "policy_name": "RequestCountTrackingScalingPolicy",
        "property": "ALBRequestCountPerTarget",
    },
}


def cluster_name(cluster: str) -> str:
    """
    The scalable target identifies the cluster by name. Cluster ARNs end with cluster/<name>
    """
    if cluster.startswith("arn:"):
        return cluster.split("/")[-1]
    return cluster


def define_scaling_range(service: ServiceDefinition) -> tuple:
    """
    Returns the min and max capacity. Max defaults to the highest of the desired count and min capacity.
    """
    min_capacity = set_else_none("min_capacity", service.autoscaling, 1, True)
    max_capacity = set_else_none(
        "max_capacity",
        service.autoscaling,
        max(service.desired_count, min_capacity),
        True,
    )
    if max_capacity < min_capacity:
        raise IncompatibleOptions(
            f"{service.name} - autoscaling.max_capacity ({max_capacity})"
            f" must be greater or equal to min_capacity ({min_capacity})"
        )
    return min_capacity, max_capacity


def define_tracking_target_configuration(
    target_scaling_config: dict, config_key: str, resource_label=None
) -> applicationautoscaling.TargetTrackingScalingPolicyConfiguration:
    """
    Function to create the configuration for target tracking scaling

    :param dict target_scaling_config:
    :param str config_key:
    :param resource_label: the load balancer and target group label, for request count tracking
    """
    if config_key not in TRACKING_SETTINGS.keys():
        raise KeyError(
            config_key, "Is invalid. Expected one of", TRACKING_SETTINGS.keys()
        )
    spec_props = {"PredefinedMetricType": TRACKING_SETTINGS[config_key]["property"]}
    if resource_label:
        spec_props["ResourceLabel"] = resource_label
    return applicationautoscaling.TargetTrackingScalingPolicyConfiguration(
        DisableScaleIn=set_else_none(
            "disable_scale_in", target_scaling_config, False, True
        ),
        ScaleInCooldown=set_else_none(
            "scale_in_cooldown", target_scaling_config, DEFAULT_SCALE_IN_COOLDOWN, True
        ),
        ScaleOutCooldown=set_else_none(
            "scale_out_cooldown",
            target_scaling_config,
            DEFAULT_SCALE_OUT_COOLDOWN,
            True,
        ),
        TargetValue=float(target_scaling_config["target"]),
        PredefinedMetricSpecification=applicationautoscaling.PredefinedMetricSpecification(
            **spec_props
        ),
    )


def request_count_resource_label(
    service: ServiceDefinition, target_group: TargetGroup
) -> Join:
    if not target_group or not service.load_balancer:
        raise IncompatibleOptions(
            f"{service.name} - autoscaling.alb_request_count requires load_balancer to be set"
        )
    if not keyisset("load_balancer_full_name", service.load_balancer):
        raise IncompatibleOptions(
            f"{service.name} - autoscaling.alb_request_count requires load_balancer.load_balancer_full_name"
        )
    return Join(
        "/",
        [
            service.load_balancer["load_balancer_full_name"],
            GetAtt(target_group, "TargetGroupFullName"),
        ],
    )


def define_scheduled_actions(service: ServiceDefinition) -> list:
    actions = []
    for scheduled in set_else_none("scheduled", service.autoscaling, []):
        props = {
            "ScheduledActionName": scheduled["name"],
            "Schedule": scheduled["schedule"],
        }
        scaling_props = {}
        if keypresent("min_capacity", scheduled):
            scaling_props["MinCapacity"] = scheduled["min_capacity"]
        if keypresent("max_capacity", scheduled):
            scaling_props["MaxCapacity"] = scheduled["max_capacity"]
        if not scaling_props:
            raise IncompatibleOptions(
                f"{service.name} - Scheduled action {scheduled['name']}"
                " must set at least one of min_capacity or max_capacity"
            )
        if (
            len(scaling_props) == 2
            and scaling_props["MaxCapacity"] < scaling_props["MinCapacity"]
        ):
            raise IncompatibleOptions(
                f"{service.name} - Scheduled action {scheduled['name']}: max_capacity must be >= min_capacity"
            )
        props["ScalableTargetAction"] = applicationautoscaling.ScalableTargetAction(
            **scaling_props
        )
        if keyisset("timezone", scheduled):
            props["Timezone"] = scheduled["timezone"]
        actions.append(applicationautoscaling.ScheduledAction(**props))
    return actions


def add_service_scaling(
    service: ServiceDefinition,
    template: Template,
    ecs_service: Service,
    target_group: TargetGroup = None,
):
    """
    Creates the scalable target of the ECS Service, its target tracking policies and scheduled actions.

    :return: the scalable target, None when autoscaling is not configured
    :rtype: troposphere.applicationautoscaling.ScalableTarget
    """
    if not service.autoscaling:
        return None
    min_capacity, max_capacity = define_scaling_range(service)
    props = {
        "MinCapacity": min_capacity,
        "MaxCapacity": max_capacity,
        "ScalableDimension": "ecs:service:DesiredCount",
        "ServiceNamespace": "ecs",
        "RoleARN": Sub(
            f"arn:${{{AWS_PARTITION}}}:iam::${{{AWS_ACCOUNT_ID}}}:role/"
            f"ecs.application-autoscaling.${{{AWS_URL_SUFFIX}}}/"
            "AWSServiceRoleForApplicationAutoScaling_ECSService"
        ),
        "ResourceId": Sub(
            f"service/{cluster_name(service.cluster)}/${{{ecs_service.title}.Name}}"
        ),
        "SuspendedState": applicationautoscaling.SuspendedState(
            DynamicScalingInSuspended=False
        ),
    }
    scheduled_actions = define_scheduled_actions(service)
    if scheduled_actions:
        props["ScheduledActions"] = scheduled_actions
    scalable_target = add_resource(
        template,
        applicationautoscaling.ScalableTarget(SERVICE_SCALING_TARGET, **props),
    )
    for config_key, settings in TRACKING_SETTINGS.items():
        if not keyisset(config_key, service.autoscaling):
            continue
        resource_label = None
        if config_key == "alb_request_count":
            resource_label = request_count_resource_label(service, target_group)
        add_resource(
            template,
            applicationautoscaling.ScalingPolicy(
                settings["title"],
                ScalingTargetId=Ref(scalable_target),
                PolicyName=settings["policy_name"],
                PolicyType="TargetTrackingScaling",
                TargetTrackingScalingPolicyConfiguration=define_tracking_target_configuration(
                    service.autoscaling[config_key], config_key, resource_label
                ),
            ),
        )
        LOG.info(
            f"{service.name} - Target tracking on {config_key}"
            f" at {service.autoscaling[config_key]['target']}"
        )
    return scalable_target
