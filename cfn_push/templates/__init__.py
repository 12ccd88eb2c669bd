# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
CloudFormation template files.

Templates are read with cfn-flip so both JSON and YAML (including the short
intrinsic function tags) load into the same structure. YAML is the canonical
format written back to disk.
"""

import json
import logging
import os
from typing import Any, Dict, List, Tuple

import cfn_flip

from cfn_push.config import OPTIONAL_BUILD_DIRECTORY_NAME
from cfn_push.models import FunctionResourceKind
from cfn_push.utils import strip_bom

logger = logging.getLogger(__name__)

DATA_DIR = os.path.join(os.path.dirname(__file__), "data")
ROOT_STACK_TEMPLATE = "root-stack-template.json"
UPDATE_IDP_ROLES_TEMPLATE = "update-idp-roles-cfn.json"

STRUCTURED_TEMPLATE_EXTENSIONS = (".json", ".yaml", ".yml")


def is_template_file(file_name: str) -> bool:
    return "template" in file_name and not file_name.startswith(".")


def list_template_files(directory: str) -> List[str]:
    """Names of the CloudFormation templates in a directory, sorted"""
    if not os.path.isdir(directory):
        return []
    return sorted(f for f in os.listdir(directory) if is_template_file(f))


def get_cfn_files(resource_dir: str) -> Tuple[str, List[str]]:
    """
    Locate the templates of a resource

    Resources with a build step (for example GraphQL APIs) write their
    templates to a build/ directory, which takes precedence when present.

    Returns:
        Tuple of (directory holding the templates, template file names)
    """
    build_dir = os.path.join(resource_dir, OPTIONAL_BUILD_DIRECTORY_NAME)
    if os.path.isdir(build_dir):
        return build_dir, list_template_files(build_dir)
    return resource_dir, list_template_files(resource_dir)


def read_template_text(file_path: str) -> str:
    with open(file_path, "r", encoding="utf-8") as f:
        return strip_bom(f.read())


def read_template(file_path: str) -> Dict[str, Any]:
    """Load a JSON or YAML CloudFormation template"""
    data, _ = cfn_flip.load(read_template_text(file_path))
    return data


def write_yaml_template(file_path: str, template: Dict[str, Any]) -> str:
    logger.info(f"Writing YAML: {file_path}")
    with open(file_path, "w", encoding="utf-8") as f:
        f.write(cfn_flip.dump_yaml(template))
    return file_path


def yaml_path_for(file_path: str) -> str:
    root, ext = os.path.splitext(file_path)
    if ext == ".json":
        return root + ".yaml"
    return file_path


def flip_json_to_yaml(json_path: str) -> str:
    """Write the YAML form of a JSON template next to it, returns the YAML path"""
    yaml_path = yaml_path_for(json_path)
    logger.info(f"Converting {json_path} to {yaml_path}")
    yaml_text = cfn_flip.to_yaml(read_template_text(json_path), clean_up=True)
    with open(yaml_path, "w", encoding="utf-8") as f:
        f.write(yaml_text)
    return yaml_path


def load_data_template(name: str) -> Dict[str, Any]:
    """Load one of the packaged JSON skeletons as plain dicts"""
    with open(os.path.join(DATA_DIR, name), "r", encoding="utf-8") as f:
        return json.load(f)


def detect_function_kind(template: Dict[str, Any]) -> FunctionResourceKind:
    function = template.get("Resources", {}).get("LambdaFunction")
    if function is None:
        raise KeyError("Template has no Resources.LambdaFunction")
    return FunctionResourceKind.from_resource_type(function.get("Type"))


def set_code_location(template: Dict[str, Any], bucket: str, key: str) -> FunctionResourceKind:
    """Point the template's LambdaFunction at an uploaded code archive"""
    kind = detect_function_kind(template)
    properties = template["Resources"]["LambdaFunction"].setdefault("Properties", {})

    if kind is FunctionResourceKind.SERVERLESS:
        properties["CodeUri"] = {"Bucket": bucket, "Key": key}
    elif kind is FunctionResourceKind.NATIVE:
        properties["Code"] = {"S3Bucket": bucket, "S3Key": key}

    return kind
