#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Titles and defaults bound to the ECS service and its task definition.
All the titles, marked `_T`, are used the same way across all imports,
which keeps the logical IDs of the resources consistent.
"""

SERVICE_T = "EcsService"
TASK_T = "EcsTaskDefinition"
LOG_GROUP_T = "ServiceLogGroup"
SG_T = "ServiceSecurityGroup"
IAM_STACK_T = "iam"
SERVICE_SCALING_TARGET = "ServiceScalingTarget"
TARGET_GROUP_T = "ServiceTargetGroup"

TASK_ROLE_T = "TaskRole"
EXEC_ROLE_T = "ExecutionRole"

FARGATE_MODES = {
    256: [2**i for i in [9, 10, 11]],
    512: [(2**10) * i for i in range(1, 5)],
    1024: [(2**10) * i for i in range(2, 9)],
    2048: [(2**10) * i for i in range(4, 17)],
    4096: [(2**10) * i for i in range(8, 31)],
    8192: [(2**10) * i for i in range(16, 61, 4)],
    16384: [(2**10) * i for i in range(32, 121, 8)],
}

DEFAULT_CPU = 256
DEFAULT_MEMORY = 512
DEFAULT_PLATFORM_VERSION = "LATEST"
DEFAULT_CPU_ARCHITECTURE = "X86_64"
DEFAULT_OS_FAMILY = "LINUX"
DEFAULT_DESIRED_COUNT = 1

DEFAULT_LOG_RETENTION = 30
RETENTION_VALUES = [
    1,
    3,
    5,
    7,
    14,
    30,
    60,
    90,
    120,
    150,
    180,
    365,
    400,
    545,
    731,
    1096,
    1827,
    2192,
    2557,
    2922,
    3288,
    3653,
]

LOG_ROUTER_NAME = "log_router"
LOG_ROUTER_IMAGE = "public.ecr.aws/aws-observability/aws-for-fluent-bit:stable"
LOG_ROUTER_MEMORY_RESERVATION = 50
LOG_ROUTER_STREAM_PREFIX = "firelens"
LOG_ROUTER_DEFAULT_OUTPUT = "cloudwatch_logs"
LOG_ROUTER_DEFAULT_FIRELENS_OPTIONS = {"enable-ecs-log-metadata": "true"}

DEPENDENCY_CONDITIONS = ["START", "COMPLETE", "SUCCESS", "HEALTHY"]

HEALTHCHECK_DEFAULTS = {"interval": 30, "timeout": 5, "retries": 3}
