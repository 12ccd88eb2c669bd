# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import copy
import json
import logging
import os
import time
from typing import Any, Dict, List, Optional

from cfn_push.config import OPTIONAL_BUILD_DIRECTORY_NAME
from cfn_push.exceptions import ParseWarning
from cfn_push.models import ResourceDescriptor
from cfn_push.parameters import PARAMETERS_FILE_NAME, migrate_legacy_params, prune_to_template
from cfn_push.s3 import APPSYNC_PREFIX
from cfn_push.utils import get_directory_checksum, read_json_file, strip_bom, write_json_file

logger = logging.getLogger(__name__)

APPSYNC_SERVICE = "AppSync"
CF_FILE_NAME = "cloudformation-template.json"
API_KEY = "API_KEY"


def is_api_key_configured(amplify_meta: Dict[str, Any]) -> bool:
    """Whether the project's first AppSync API uses API key authorization"""
    apis = [
        details
        for details in amplify_meta.get("api", {}).values()
        if details.get("service") == APPSYNC_SERVICE
    ]
    if not apis:
        return False

    output = apis[0].get("output") or {}
    # Check for legacy security configuration and multi-auth as well
    if output.get("securityType") == API_KEY:
        return True

    auth_config = output.get("authConfig")
    if auth_config:
        default_auth = auth_config.get("defaultAuthentication") or {}
        if default_auth.get("authenticationType") == API_KEY:
            return True
        additional = auth_config.get("additionalAuthenticationProviders") or []
        return any(p.get("authenticationType") == API_KEY for p in additional)

    return False


class AppSyncFileUploader:
    """Prepares and uploads the deployment files of the project's AppSync API."""

    def __init__(self, manifest, store, backend_dir: str):
        self.manifest = manifest
        self.store = store
        self.backend_dir = backend_dir
        self.warnings: List[str] = []

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def resource_dir(self, resource: ResourceDescriptor) -> str:
        return os.path.normpath(
            os.path.join(self.backend_dir, resource.category, resource.resource_name)
        )

    def get_deployment_root_key(
        self, resource_dir: str, use_deprecated_parameters: bool = False
    ) -> str:
        """
        Key prefix for the API's build files

        The hash of the resource directory (without build/) keeps the key
        stable for an unchanged API. The deprecated mode uses the current
        time in milliseconds and never repeats.
        """
        if use_deprecated_parameters:
            sub_key = str(int(time.time() * 1000))
        else:
            sub_key = get_directory_checksum(resource_dir)
        return f"{APPSYNC_PREFIX}/{sub_key}"

    def _read_personal_parameters(self, file_path: str) -> Optional[Dict[str, Any]]:
        if not os.path.exists(file_path):
            return None
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                personal = json.loads(strip_bom(f.read()))
            if not isinstance(personal, dict):
                raise ValueError("parameters must be a JSON object")
            return personal
        except ValueError as e:
            warning = ParseWarning(file_path, e)
            self._warn(str(warning))
            return None

    def write_updated_parameters_json(
        self,
        resource: ResourceDescriptor,
        root_key: str,
        use_deprecated_parameters: bool = False,
        default_params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Write build/parameters.json for the API and return its contents"""
        resource_dir = self.resource_dir(resource)
        api_key_configured = is_api_key_configured(self.manifest.amplify_meta)

        personal = self._read_personal_parameters(
            os.path.join(resource_dir, PARAMETERS_FILE_NAME)
        )
        if personal is None:
            parameters = copy.deepcopy(default_params) if default_params else {}
            parameters["CreateAPIKey"] = 1 if api_key_configured else 0
        else:
            parameters, warnings = migrate_legacy_params(
                personal, api_key_configured, default_params
            )
            for message in warnings:
                self._warn(message)

        if not use_deprecated_parameters:
            parameters["S3DeploymentBucket"] = self.manifest.deployment_bucket_name()
            parameters["S3DeploymentRootKey"] = root_key

        # Only pass parameters the compiled template expects
        build_dir = os.path.join(resource_dir, OPTIONAL_BUILD_DIRECTORY_NAME)
        cf_file_path = os.path.join(build_dir, CF_FILE_NAME)
        try:
            template = read_json_file(cf_file_path)
            if template is None:
                raise FileNotFoundError(cf_file_path)
            parameters = prune_to_template(parameters, template)
        except (OSError, ValueError) as e:
            self._warn(f"Could not read cloudformation template at path: {cf_file_path} ({e})")

        write_json_file(os.path.join(build_dir, PARAMETERS_FILE_NAME), parameters)
        return parameters

    def upload_appsync_files(
        self,
        resources_to_update: List[ResourceDescriptor],
        all_resources: List[ResourceDescriptor],
        use_deprecated_parameters: bool = False,
        default_params: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """
        Update build/parameters.json and upload the API build directory.

        Parameters are refreshed even when the API itself is not being
        pushed, so a machine that never built the API still passes a valid
        S3DeploymentRootKey.

        Returns:
            The deployment root key used, or None when there is no API
        """
        api_to_update = [r for r in resources_to_update if r.service == APPSYNC_SERVICE]
        all_apis = [r for r in all_resources if r.service == APPSYNC_SERVICE]

        # There can only be one appsync resource
        if api_to_update:
            resource = api_to_update[0]
        elif all_apis:
            logger.info("Updating API Parameters")
            resource = all_apis[0]
        else:
            logger.debug("No AppSync API in the project")
            return None

        logger.info("Uploading AppSync Files...")
        resource_dir = self.resource_dir(resource)
        build_dir = os.path.join(resource_dir, OPTIONAL_BUILD_DIRECTORY_NAME)
        # Writing parameters creates build/, so check for a compiled API first
        is_built = os.path.isdir(build_dir)
        root_key = self.get_deployment_root_key(resource_dir, use_deprecated_parameters)
        self.write_updated_parameters_json(
            resource, root_key, use_deprecated_parameters, default_params
        )

        if not api_to_update:
            return root_key

        if not is_built:
            self._warn(f"Warning: resourceBuildDir {build_dir} not found!")
            return root_key

        count = self.store.upload_directory(build_dir, root_key)
        logger.info(f"Uploaded {count} AppSync files to {root_key}")
        return root_key
