#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Functions to manage a template and whether it should be stored in S3
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_fargate_service.common.settings import ServiceSettings

import json
from os import makedirs
from os.path import abspath

import yaml

try:
    from yaml import CDumper as Dumper
except ImportError:
    from yaml import Dumper

from botocore.exceptions import ClientError
from troposphere import Template

from ecs_fargate_service.common import FILE_PREFIX
from ecs_fargate_service.common.logging import LOG

JSON_MIME = "application/json"
YAML_MIME = "application/x-yaml"

TEMPLATE_BODY_MAX_SIZE = 51200


def upload_file(
    body: str,
    bucket_name: str,
    file_name: str,
    settings: ServiceSettings,
    prefix: str = None,
    mime: str = None,
) -> str:
    """Upload template_body to a file in s3 with given prefix and bucket_name

    :param str body: Template body, would come from troposphere template to_json() or to_yaml()
    :param str bucket_name: name of the bucket to upload the file to
    :param str file_name: Name of the file
    :param settings: execution settings, provide the boto3 session
    :param str prefix: override default prefix for the file in S3
    :param str mime: MIME type of the content
    :returns: url_path, the https://s3.amazonaws.com/ URL to the file
    :rtype: str
    """
    if mime is None:
        mime = JSON_MIME
    if prefix is None:
        prefix = FILE_PREFIX

    key = f"{prefix}/{file_name}"
    client = settings.session.client("s3")
    client.put_object(
        Body=body,
        Key=key,
        Bucket=bucket_name,
        ContentEncoding="utf-8",
        ContentType=mime,
        ServerSideEncryption="AES256",
    )
    return f"https://s3.amazonaws.com/{bucket_name}/{key}"


class FileArtifact:
    """
    Class to handle files artifacts, such as templates or parameters files.
    It will allow to upload the content to S3 or write to local filesystem.
    It also handles CloudFormation templates validation.

    :ivar str url: The URL in S3 where the file will be uploaded to or available from.
    :ivar str body: The content of the FileArtifact
    :ivar troposphere.Template template: the CFN template
    :ivar str file_name: the base name of the file
    :ivar str mime: MIME-type of the file
    :ivar str file_path: Output file path for the FileArtifact
    """

    mime = "text/plain"
    file_path = None

    def __init__(
        self,
        file_name: str,
        settings: ServiceSettings,
        file_format: str = None,
        template: Template = None,
        content=None,
    ):
        self.template = None
        self.content = None
        self.file_name = file_name
        self.body = None
        self.url = None
        if file_format is None:
            file_format = settings.format
        if template is not None and not isinstance(template, Template):
            raise TypeError("template must be of type", Template, "got", type(template))
        elif (
            content is not None
            and not isinstance(content, (tuple, dict, str, list))
            and template is None
        ):
            raise TypeError(
                "content must be of type", tuple, dict, str, list, "Got", type(content)
            )
        elif template is not None:
            self.template = template
        else:
            self.content = content
        if file_format is not None and not isinstance(file_format, str):
            raise TypeError("format is of type", type(file_format), "expected", str)
        self.define_file_specs(file_name, file_format, settings)
        self.file_path = f"{settings.output_dir}/{self.file_name}"

    def __repr__(self):
        return self.file_path

    def define_file_specs(self, file_name, file_format, settings) -> None:
        """
        Method to set the file name and MIME type from the requested format

        :param str file_name: name of the file
        :param str file_format: format to use for the file.
        :param settings: The settings for execution
        """
        if file_format is not None and file_format in settings.allowed_formats:
            self.file_name = f"{file_name}.{file_format}"

        if self.file_name.endswith(".json"):
            self.mime = JSON_MIME
        elif self.file_name.endswith(".yml") or self.file_name.endswith(".yaml"):
            self.mime = YAML_MIME
        else:
            self.mime = JSON_MIME
            self.file_name = f"{self.file_name}.template"

    def define_body(self) -> None:
        """
        Method to define the body of the file artifact from the template or the content.
        """
        if isinstance(self.template, Template):
            if self.mime == YAML_MIME:
                self.body = self.template.to_yaml()
            else:
                self.body = self.template.to_json()
        elif isinstance(self.content, (list, dict, tuple)):
            if self.mime == YAML_MIME:
                self.body = yaml.dump(self.content, Dumper=Dumper)
            else:
                self.body = json.dumps(self.content, indent=4)
        elif isinstance(self.content, str):
            self.body = self.content

    def write(self, settings: ServiceSettings) -> None:
        """
        Method to write the files to local filesystem in the output directory
        """
        makedirs(settings.output_dir, exist_ok=True)
        if self.body is None:
            self.define_body()
        with open(self.file_path, "w") as template_fd:
            template_fd.write(self.body)
        LOG.info(f"{self.file_name} written successfully at {abspath(self.file_path)}")

    def upload(self, settings: ServiceSettings) -> None:
        """
        Method to handle uploading the files to S3.
        """
        if self.body is None:
            self.define_body()
        self.url = upload_file(
            body=self.body,
            settings=settings,
            bucket_name=settings.bucket_name,
            file_name=self.file_name,
            mime=self.mime,
        )
        LOG.info(f"{self.file_name} uploaded successfully to {self.url}")

    def validate(self, settings: ServiceSettings) -> None:
        """
        Method to validate the CloudFormation template, either via URL once uploaded to S3 or via TemplateBody
        """
        client = settings.session.client("cloudformation")
        try:
            if self.url:
                client.validate_template(TemplateURL=self.url)
            elif len(self.body) >= TEMPLATE_BODY_MAX_SIZE:
                LOG.warning(
                    f"Template body for {self.file_name} is too big for local validation. Skipping."
                )
                return
            else:
                client.validate_template(TemplateBody=self.body)
            LOG.debug(f"Template {self.file_name} was validated successfully by CFN")
        except ClientError as error:
            LOG.error(f"{self.file_name} - Template validation failed")
            LOG.error(error)
            raise
