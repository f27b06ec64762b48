#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Custom exceptions for ecs-fargate-service
"""


class ServiceModuleException(Exception):
    """
    Top class for ecs-fargate-service Exceptions
    """

    def __init__(self, msg, *args):
        super().__init__(msg, *args)


class IncompatibleOptions(ServiceModuleException):
    """
    Exception when two settings conflict, i.e. request count scaling without a load balancer
    """


class InvalidContainerReference(ServiceModuleException):
    """
    Exception when a setting points to a container, or a container port, that is not defined.
    """


class InvalidFargateSettings(ServiceModuleException):
    """
    Exception when the task or container compute settings cannot be run on AWS Fargate
    """
