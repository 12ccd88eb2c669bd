# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Pytest configuration file for the cfn_push tests.
"""

import copy
import io
import json
import os
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from cfn_push.config import PushConfig
from cfn_push.manifest import ProjectManifest

# Keep boto3 from looking for a region or credentials of the machine running the tests
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

BUCKET = "amplify-app-dev-deployment"
STACK_NAME = "amplify-app-dev"

PROVIDER_SETTINGS = {
    "awscloudformation": {
        "DeploymentBucketName": BUCKET,
        "StackName": STACK_NAME,
        "AuthRoleName": "amplify-app-dev-authRole",
        "UnauthRoleName": "amplify-app-dev-unauthRole",
        "Region": "us-east-1",
    }
}

FUNCTION_TEMPLATE = {
    "AWSTemplateFormatVersion": "2010-09-09",
    "Parameters": {"env": {"Type": "String"}},
    "Resources": {
        "LambdaFunction": {
            "Type": "AWS::Lambda::Function",
            "Properties": {
                "Handler": "index.handler",
                "Runtime": "python3.12",
                "Role": {"Fn::GetAtt": ["LambdaExecutionRole", "Arn"]},
            },
        }
    },
}

STORAGE_TEMPLATE = {
    "AWSTemplateFormatVersion": "2010-09-09",
    "Parameters": {"env": {"Type": "String"}, "bucketName": {"Type": "String"}},
    "Resources": {
        "S3Bucket": {
            "Type": "AWS::S3::Bucket",
            "Properties": {"BucketName": {"Ref": "bucketName"}},
        }
    },
}


def write_json(path: str, data: Any) -> str:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=4)
    return path


def write_text(path: str, text: str) -> str:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return path


def write_resource_files(base_dir: str, files: Dict[str, Any]) -> str:
    """Write {relative path: dict or text} below base_dir"""
    for relative_path, content in files.items():
        path = os.path.join(base_dir, relative_path)
        if isinstance(content, (dict, list)):
            write_json(path, content)
        else:
            write_text(path, content)
    return base_dir


def resource_entry(
    service: str,
    depends_on: Optional[list] = None,
    build: bool = False,
    template_url: Optional[str] = None,
    provider_plugin: Optional[str] = "awscloudformation",
) -> Dict[str, Any]:
    entry = {"service": service, "build": build, "dependsOn": depends_on or []}
    if provider_plugin:
        entry["providerPlugin"] = provider_plugin
    if template_url:
        entry["providerMetadata"] = {"s3TemplateURL": template_url, "logicalId": None}
    return entry


@pytest.fixture
def console():
    return Console(file=io.StringIO(), force_terminal=False, width=200)


@pytest.fixture
def project_root(tmp_path):
    root = tmp_path / "project"
    (root / "amplify" / "backend").mkdir(parents=True)
    (root / "amplify" / "#current-cloud-backend").mkdir(parents=True)
    return root


@pytest.fixture
def config(project_root):
    return PushConfig(project_root=str(project_root), region="us-east-1", max_workers=2)


@pytest.fixture
def make_manifest(config):
    def _make(
        amplify_meta: Optional[Dict[str, Any]] = None,
        current_meta: Optional[Dict[str, Any]] = None,
        team_provider_info: Optional[Dict[str, Any]] = None,
        env_name: str = "dev",
    ) -> ProjectManifest:
        meta = {"providers": copy.deepcopy(PROVIDER_SETTINGS)}
        meta.update(copy.deepcopy(amplify_meta or {}))
        return ProjectManifest(
            config,
            meta,
            copy.deepcopy(current_meta or {}),
            copy.deepcopy(team_provider_info or {}),
            {"envName": env_name},
        )

    return _make


@pytest.fixture
def mock_store():
    store = MagicMock()
    store.bucket = BUCKET
    store.upload_file.return_value = BUCKET
    store.template_url.side_effect = (
        lambda key, bucket=None: f"https://{bucket or BUCKET}.s3.amazonaws.com/{key}"
    )
    return store


@pytest.fixture
def write_files():
    return write_resource_files


@pytest.fixture
def entry():
    return resource_entry


@pytest.fixture
def function_template():
    return copy.deepcopy(FUNCTION_TEMPLATE)


@pytest.fixture
def storage_template():
    return copy.deepcopy(STORAGE_TEMPLATE)
