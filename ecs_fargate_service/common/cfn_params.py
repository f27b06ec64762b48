#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Common parameters for CFN
All the titles marked `_T` are strings used the same way across all imports,
so the nested stacks and the root stack use the same names.
"""

from troposphere import Parameter


SERVICE_NAME_T = "ServiceName"
SERVICE_NAME = Parameter(
    SERVICE_NAME_T,
    Type="String",
    AllowedPattern=r"[a-zA-Z0-9-_]+",
    Description="Name of the ECS Service the resources belong to",
)

LOG_GROUP_NAME_T = "ServiceLogGroupName"
LOG_GROUP_NAME = Parameter(
    LOG_GROUP_NAME_T,
    Type="String",
    Description="Name of the CloudWatch log group the containers log into",
)
