# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Parameters passed from the root stack to each nested resource stack.

Parameters come from the resource's parameters.json, environment specific
overrides in team-provider-info.json, and cross-stack references computed
from the resource's dependency edges.
"""

import copy
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from cfn_push.config import OPTIONAL_BUILD_DIRECTORY_NAME
from cfn_push.exceptions import MissingDependency, MissingTemplateLocation
from cfn_push.models import DependsOn
from cfn_push.utils import read_json_file

logger = logging.getLogger(__name__)

PARAMETERS_FILE_NAME = "parameters.json"
LIST_DELIMITER = ","

# Defaults applied to AppSync parameters when migrating or reverting an API
LEGACY_DEFAULT_PARAMS = {
    "CreateAPIKey": 0,
    "APIKeyExpirationEpoch": -1,
    "authRoleName": {"Ref": "AuthRoleName"},
    "unauthRoleName": {"Ref": "UnauthRoleName"},
}


def load_resource_parameters(
    backend_dir: str,
    category: str,
    resource_name: str,
    team_provider_info: Optional[Dict[str, Any]] = None,
    env_name: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Load the static parameters of a resource

    build/parameters.json wins over parameters.json; environment specific
    values from team-provider-info.json are layered on top.
    """
    resource_dir = os.path.join(backend_dir, category, resource_name)
    parameters = read_json_file(
        os.path.join(resource_dir, OPTIONAL_BUILD_DIRECTORY_NAME, PARAMETERS_FILE_NAME)
    )
    if parameters is None:
        parameters = read_json_file(os.path.join(resource_dir, PARAMETERS_FILE_NAME), {})

    if team_provider_info and env_name:
        env_params = (
            team_provider_info.get(env_name, {})
            .get("categories", {})
            .get(category, {})
            .get(resource_name, {})
        )
        parameters.update(env_params)

    return parameters


def cross_stack_reference(dependency: DependsOn, attribute: str) -> Dict[str, Any]:
    return {"Fn::GetAtt": [dependency.logical_id, f"Outputs.{attribute}"]}


def _list_item_text(value: Any) -> str:
    # Parameter AllowedValues are case-sensitive, so booleans join as true/false
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def flatten_parameters(parameters: Dict[str, Any]) -> Dict[str, Any]:
    """Join list values; nested stack parameters cannot be lists"""
    return {
        key: LIST_DELIMITER.join(_list_item_text(v) for v in value)
        if isinstance(value, list)
        else value
        for key, value in parameters.items()
    }


def resolve_parameters(
    category: str,
    resource_name: str,
    amplify_meta: Dict[str, Any],
    env_name: Optional[str],
    parameters: Optional[Dict[str, Any]] = None,
    target: Optional[Tuple[str, str, str]] = None,
    skip_env: bool = False,
) -> Dict[str, Any]:
    """
    Compute the parameter set of one nested stack.

    Args:
        category: Resource category
        resource_name: Resource name
        amplify_meta: The project manifest's category/resource mapping
        env_name: Current environment name
        parameters: Static parameters of the resource
        target: (category, resource_name, service) of a scoped migration; only
            that resource receives the env parameter
        skip_env: Do not inject env at all

    Raises:
        MissingDependency: when a dependency edge points at an undeclared resource
    """
    parameters = copy.deepcopy(parameters or {})
    details = amplify_meta[category][resource_name]

    for edge in details.get("dependsOn") or []:
        dependency = DependsOn.from_dict(edge)
        if dependency.resource_name not in amplify_meta.get(dependency.category, {}):
            raise MissingDependency(
                category, resource_name, f"{dependency.category}:{dependency.resource_name}"
            )
        for attribute in dependency.attributes:
            parameters[dependency.logical_id + attribute] = cross_stack_reference(
                dependency, attribute
            )

    parameters = flatten_parameters(parameters)

    if skip_env:
        return parameters

    if target:
        target_category, target_name, target_service = target
        if (
            category == target_category
            and resource_name == target_name
            and details.get("service") == target_service
        ):
            parameters["env"] = env_name
    else:
        parameters["env"] = env_name

    return parameters


def resolve_template_url(category: str, resource_name: str, details: Dict[str, Any]) -> str:
    """
    Return the uploaded template location of a resource, in YAML form

    The manifest entry is updated when the recorded location still points at
    the JSON template.
    """
    provider_metadata = details.get("providerMetadata") or {}
    template_url = provider_metadata.get("s3TemplateURL")
    if not template_url:
        logger.error(f"Missing providerMetadata for {category}:{resource_name}")
        raise MissingTemplateLocation(category, resource_name)

    if template_url.endswith(".json"):
        template_url = template_url[: -len(".json")] + ".yaml"
        provider_metadata["s3TemplateURL"] = template_url
    return template_url


def migrate_legacy_params(
    raw: Dict[str, Any],
    api_key_configured: bool,
    defaults: Optional[Dict[str, Any]] = None,
) -> Tuple[Dict[str, Any], List[str]]:
    """
    Normalize an API's personal parameters to the current parameter set.

    APIKeyExpirationEpoch used to control API key creation; CreateAPIKey
    replaces it. A set APIKeyExpirationEpoch still decides CreateAPIKey,
    otherwise an explicit CreateAPIKey is kept, otherwise it follows the
    API's auth configuration.

    Args:
        raw: Contents of the resource's parameters.json
        api_key_configured: Whether the API is configured with API key auth
        defaults: Parameters to start from

    Returns:
        Tuple of (parameters, warning messages)
    """
    warnings = []
    parameters = copy.deepcopy(defaults) if defaults else {}
    parameters["CreateAPIKey"] = 1 if api_key_configured else 0
    parameters.update(copy.deepcopy(raw))

    if not parameters.get("authRoleName"):
        parameters["authRoleName"] = {"Ref": "AuthRoleName"}
    if not parameters.get("unauthRoleName"):
        parameters["unauthRoleName"] = {"Ref": "UnauthRoleName"}

    if "CreateAPIKey" in raw and "APIKeyExpirationEpoch" in raw:
        warnings.append(
            "APIKeyExpirationEpoch and CreateAPIKey parameters should not used together because "
            "it can cause unwanted behavior. In the future APIKeyExpirationEpoch will be "
            "removed, use CreateAPIKey instead."
        )

    epoch = raw.get("APIKeyExpirationEpoch")
    if epoch:
        if epoch == -1:
            parameters["CreateAPIKey"] = 0
            parameters.pop("APIKeyExpirationEpoch", None)
            warnings.append(
                "APIKeyExpirationEpoch parameter's -1 value is deprecated to disable the API "
                "Key creation. In the future CreateAPIKey parameter replaces this behavior."
            )
        else:
            parameters["CreateAPIKey"] = 1

    elif "CreateAPIKey" not in raw:
        parameters["CreateAPIKey"] = 1 if api_key_configured else 0

    return parameters, warnings


def prune_to_template(parameters: Dict[str, Any], template: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only the parameters the template declares"""
    declared = template.get("Parameters") or {}
    return {key: value for key, value in parameters.items() if key in declared}
