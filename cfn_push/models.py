# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Data model for nested stack deployments.

This module defines the resource descriptors read from the project manifest,
the diff that drives a deployment run and the enums used to track a run.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

NESTED_STACK_TYPE = "AWS::CloudFormation::Stack"
SERVERLESS_FUNCTION_TYPE = "AWS::Serverless::Function"


class DeploymentStage(Enum):
    """Deployment run stages."""

    IDLE = "IDLE"
    VALIDATING = "VALIDATING"
    PACKAGING = "PACKAGING"
    SCHEMA_TRANSFORMING = "SCHEMA_TRANSFORMING"
    PARAMETER_WRITING = "PARAMETER_WRITING"
    UPLOADING_TEMPLATES = "UPLOADING_TEMPLATES"
    COMPOSING = "COMPOSING"
    APPLYING = "APPLYING"
    META_UPDATING = "META_UPDATING"
    ARTIFACT_BACKUP = "ARTIFACT_BACKUP"
    DONE = "DONE"
    FAILED = "FAILED"


class FunctionResourceKind(Enum):
    """Shape of the LambdaFunction resource in a function template."""

    SERVERLESS = "SERVERLESS"  # AWS::Serverless::Function, code under CodeUri
    NATIVE = "NATIVE"  # AWS::Lambda::Function, code under Code

    @classmethod
    def from_resource_type(cls, resource_type: Optional[str]) -> "FunctionResourceKind":
        if resource_type == SERVERLESS_FUNCTION_TYPE:
            return cls.SERVERLESS
        return cls.NATIVE


@dataclass
class DependsOn:
    """A dependency edge from one resource to the outputs of another."""

    category: str
    resource_name: str
    attributes: List[str] = field(default_factory=list)

    @property
    def logical_id(self) -> str:
        return self.category + self.resource_name

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DependsOn":
        return cls(
            category=data["category"],
            resource_name=data["resourceName"],
            attributes=list(data.get("attributes", [])),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "resourceName": self.resource_name,
            "attributes": list(self.attributes),
        }


@dataclass
class ProviderMetadata:
    """Where the resource template lives once uploaded."""

    s3_template_url: Optional[str] = None
    logical_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["ProviderMetadata"]:
        if not data:
            return None
        return cls(
            s3_template_url=data.get("s3TemplateURL"),
            logical_id=data.get("logicalId"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"s3TemplateURL": self.s3_template_url, "logicalId": self.logical_id}


@dataclass
class ResourceDescriptor:
    """
    A backend resource declared in the project manifest.

    Identity is the (category, resource_name) pair.
    """

    category: str
    resource_name: str
    service: Optional[str] = None
    build: bool = False
    depends_on: List[DependsOn] = field(default_factory=list)
    provider_plugin: Optional[str] = None
    provider_metadata: Optional[ProviderMetadata] = None

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.category, self.resource_name)

    @property
    def logical_id(self) -> str:
        return self.category + self.resource_name

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceDescriptor":
        """Create a descriptor from a manifest entry (camelCase keys)."""
        if not data:
            raise ValueError("Cannot create ResourceDescriptor from empty data")

        return cls(
            category=data["category"],
            resource_name=data["resourceName"],
            service=data.get("service"),
            build=bool(data.get("build", False)),
            depends_on=[DependsOn.from_dict(d) for d in data.get("dependsOn") or []],
            provider_plugin=data.get("providerPlugin"),
            provider_metadata=ProviderMetadata.from_dict(data.get("providerMetadata")),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "category": self.category,
            "resourceName": self.resource_name,
            "service": self.service,
            "build": self.build,
            "dependsOn": [d.to_dict() for d in self.depends_on],
            "providerPlugin": self.provider_plugin,
        }
        if self.provider_metadata:
            result["providerMetadata"] = self.provider_metadata.to_dict()
        return result


@dataclass
class ResourceDiff:
    """The set of resource changes a deployment run has to apply."""

    resources_to_be_created: List[ResourceDescriptor] = field(default_factory=list)
    resources_to_be_updated: List[ResourceDescriptor] = field(default_factory=list)
    resources_to_be_deleted: List[ResourceDescriptor] = field(default_factory=list)
    all_resources: List[ResourceDescriptor] = field(default_factory=list)

    def __post_init__(self):
        seen = {}
        for label, group in (
            ("created", self.resources_to_be_created),
            ("updated", self.resources_to_be_updated),
            ("deleted", self.resources_to_be_deleted),
        ):
            for resource in group:
                previous = seen.get(resource.identity)
                if previous and previous != label:
                    raise ValueError(
                        f"Resource {resource.category}:{resource.resource_name} "
                        f"is both {previous} and {label}"
                    )
                seen[resource.identity] = label

    @property
    def resources(self) -> List[ResourceDescriptor]:
        """Resources that get (re)deployed: created followed by updated."""
        return self.resources_to_be_created + self.resources_to_be_updated

    @property
    def has_changes(self) -> bool:
        return bool(self.resources or self.resources_to_be_deleted)


@dataclass
class Artifact:
    """A packaged bundle stored in the deployment bucket."""

    name: str
    path: str
    s3_key: str
    checksum: str
