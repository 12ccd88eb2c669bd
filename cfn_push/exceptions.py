# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Errors raised while pushing resources to the cloud.
"""

from typing import Optional


class PushError(Exception):
    """Base class for all deployment failures."""


class ValidationError(PushError):
    """A resource template failed static validation."""

    def __init__(self, resource_id: str, file_path: str, cause: Optional[Exception] = None):
        self.resource_id = resource_id
        self.file_path = file_path
        self.cause = cause
        message = f"Invalid CloudFormation template: {file_path} ({resource_id})"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class MissingProviderPlugin(PushError):
    def __init__(self, category: str, resource_name: str):
        self.category = category
        self.resource_name = resource_name
        super().__init__(f"Missing providerPlugin for {category}:{resource_name}")


class MissingTemplateLocation(PushError):
    def __init__(self, category: str, resource_name: str):
        self.category = category
        self.resource_name = resource_name
        super().__init__(f"Missing providerMetadata for {category}:{resource_name}")


class MissingDependency(PushError):
    def __init__(self, category: str, resource_name: str, dependency: str):
        self.category = category
        self.resource_name = resource_name
        self.dependency = dependency
        super().__init__(
            f"{category}:{resource_name} depends on {dependency} which is not in the project"
        )


class UploadError(PushError):
    def __init__(self, bucket: str, key: str, cause: Optional[Exception] = None):
        self.bucket = bucket
        self.key = key
        self.cause = cause
        super().__init__(f"Error uploading s3://{bucket}/{key}: {cause}")


class ApplyError(PushError):
    def __init__(self, stack_name: str, reason: str):
        self.stack_name = stack_name
        self.reason = reason
        super().__init__(f"Failed to update stack {stack_name}: {reason}")


class ParseWarning(Warning):
    """A personal parameters file could not be parsed; its legacy values are skipped."""

    def __init__(self, file_path: str, cause: Optional[Exception] = None):
        self.file_path = file_path
        self.cause = cause
        super().__init__(f'Could not parse parameters file at "{file_path}": {cause}')
