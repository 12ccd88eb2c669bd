# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Project manifest.

The manifest (amplify/backend/amplify-meta.json) records which resources the
project declares. Its copy under amplify/#current-cloud-backend records what
was last deployed; the difference between the two drives a push.

All mutations are kept in memory until save() is called, so a run that fails
before its metadata update leaves the files on disk untouched.
"""

import copy
import logging
import os
import shutil
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from cfn_push.config import PROVIDER_NAME, PushConfig
from cfn_push.models import ResourceDescriptor, ResourceDiff
from cfn_push.utils import get_directory_checksum, read_json_file, write_json_file

logger = logging.getLogger(__name__)

META_FILE_NAME = "amplify-meta.json"
TEAM_PROVIDER_INFO_FILE_NAME = "team-provider-info.json"
LOCAL_ENV_INFO_FILE_NAME = "local-env-info.json"
PROVIDERS_CATEGORY = "providers"


class ProjectManifest:
    """Declared and deployed resource state of one project environment."""

    def __init__(
        self,
        config: PushConfig,
        amplify_meta: Optional[Dict[str, Any]] = None,
        current_meta: Optional[Dict[str, Any]] = None,
        team_provider_info: Optional[Dict[str, Any]] = None,
        local_env_info: Optional[Dict[str, Any]] = None,
    ):
        self.config = config
        self.amplify_meta = amplify_meta if amplify_meta is not None else {}
        self.current_meta = current_meta if current_meta is not None else {}
        self.team_provider_info = team_provider_info or {}
        self.local_env_info = local_env_info or {}

    @classmethod
    def load(cls, config: PushConfig) -> "ProjectManifest":
        """Read the manifest files of the project at config.project_root"""
        amplify_meta = read_json_file(os.path.join(config.backend_dir, META_FILE_NAME), {})
        current_meta = read_json_file(
            os.path.join(config.current_cloud_backend_dir, META_FILE_NAME), {}
        )
        team_provider_info = read_json_file(
            os.path.join(config.amplify_dir, TEAM_PROVIDER_INFO_FILE_NAME), {}
        )
        local_env_info = read_json_file(
            os.path.join(config.amplify_dir, ".config", LOCAL_ENV_INFO_FILE_NAME), {}
        )
        logger.info(f"Loaded project manifest from {config.backend_dir}")
        return cls(config, amplify_meta, current_meta, team_provider_info, local_env_info)

    def get_project_details(self) -> Dict[str, Any]:
        return {
            "amplifyMeta": self.amplify_meta,
            "teamProviderInfo": self.team_provider_info,
            "localEnvInfo": self.local_env_info,
        }

    def get_env_info(self) -> Dict[str, Any]:
        return {"envName": self.local_env_info.get("envName")}

    @property
    def env_name(self) -> Optional[str]:
        return self.local_env_info.get("envName")

    def provider_settings(self, env_name: Optional[str] = None) -> Dict[str, Any]:
        """Provider section of the manifest, falling back to team-provider-info"""
        providers = self.amplify_meta.get(PROVIDERS_CATEGORY, {})
        if env_name is None and PROVIDER_NAME in providers:
            return providers[PROVIDER_NAME]
        env_name = env_name or self.env_name
        return self.team_provider_info.get(env_name, {}).get(PROVIDER_NAME, {})

    def deployment_bucket_name(self, env_name: Optional[str] = None) -> str:
        bucket = self.provider_settings(env_name).get("DeploymentBucketName")
        if not bucket:
            raise KeyError(f"No DeploymentBucketName configured for {env_name or self.env_name}")
        return bucket

    def stack_name(self) -> str:
        stack_name = self.provider_settings().get("StackName")
        if not stack_name:
            raise KeyError(f"No StackName configured for {self.env_name}")
        return stack_name

    def categories(self) -> List[str]:
        return [c for c in self.amplify_meta if c != PROVIDERS_CATEGORY]

    def get_resource(self, category: str, resource_name: str) -> Optional[Dict[str, Any]]:
        return self.amplify_meta.get(category, {}).get(resource_name)

    def _descriptors(self, meta: Dict[str, Any]) -> List[ResourceDescriptor]:
        resources = []
        for category, entries in meta.items():
            if category == PROVIDERS_CATEGORY:
                continue
            for resource_name, details in entries.items():
                resources.append(
                    ResourceDescriptor.from_dict(
                        {**details, "category": category, "resourceName": resource_name}
                    )
                )
        return resources

    def _resource_changed(self, resource: ResourceDescriptor) -> bool:
        backend_hash = get_directory_checksum(
            self.config.resource_dir(resource.category, resource.resource_name)
        )
        current_hash = get_directory_checksum(
            os.path.join(
                self.config.current_cloud_backend_dir,
                resource.category,
                resource.resource_name,
            )
        )
        return backend_hash != current_hash

    def get_resource_status(
        self,
        category: Optional[str] = None,
        resource_name: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> ResourceDiff:
        """Compare the declared resources with the last deployed ones"""

        def selected(resource: ResourceDescriptor) -> bool:
            if category and resource.category != category:
                return False
            if resource_name and resource.resource_name != resource_name:
                return False
            if provider and resource.provider_plugin != provider:
                return False
            return True

        declared = [r for r in self._descriptors(self.amplify_meta) if selected(r)]
        deployed = [r for r in self._descriptors(self.current_meta) if selected(r)]
        deployed_ids = {r.identity for r in deployed}
        declared_ids = {r.identity for r in declared}

        return ResourceDiff(
            resources_to_be_created=[r for r in declared if r.identity not in deployed_ids],
            resources_to_be_updated=[
                r
                for r in declared
                if r.identity in deployed_ids and self._resource_changed(r)
            ],
            resources_to_be_deleted=[r for r in deployed if r.identity not in declared_ids],
            all_resources=declared,
        )

    def update_after_resource_update(
        self, category: str, resource_name: str, key: str, value: Any
    ) -> None:
        resource = self.get_resource(category, resource_name)
        if resource is None:
            raise KeyError(f"Resource {category}:{resource_name} is not in the manifest")
        resource[key] = value

    def update_after_push(self, resources: List[ResourceDescriptor]) -> None:
        """Mark resources as deployed and mirror them into the current cloud backend"""
        timestamp = datetime.now(timezone.utc).isoformat()
        for resource in resources:
            details = self.get_resource(resource.category, resource.resource_name)
            if details is None:
                logger.warning(
                    f"Pushed resource {resource.category}:{resource.resource_name} "
                    "is missing from the manifest"
                )
                continue

            resource_dir = self.config.resource_dir(resource.category, resource.resource_name)
            details["lastPushTimeStamp"] = timestamp
            details["lastPushDirHash"] = get_directory_checksum(resource_dir)

            target_dir = os.path.join(
                self.config.current_cloud_backend_dir,
                resource.category,
                resource.resource_name,
            )
            if os.path.isdir(resource_dir):
                if os.path.exists(target_dir):
                    shutil.rmtree(target_dir)
                shutil.copytree(resource_dir, target_dir)

            self.current_meta.setdefault(resource.category, {})[resource.resource_name] = (
                copy.deepcopy(details)
            )

        if PROVIDERS_CATEGORY in self.amplify_meta:
            self.current_meta[PROVIDERS_CATEGORY] = copy.deepcopy(
                self.amplify_meta[PROVIDERS_CATEGORY]
            )

    def update_after_resource_delete(self, category: str, resource_name: str) -> None:
        for meta in (self.amplify_meta, self.current_meta):
            entries = meta.get(category)
            if entries and resource_name in entries:
                del entries[resource_name]
                if not entries:
                    del meta[category]

        target_dir = os.path.join(self.config.current_cloud_backend_dir, category, resource_name)
        if os.path.isdir(target_dir):
            shutil.rmtree(target_dir)

    def save(self) -> None:
        """Write both manifest copies to disk"""
        write_json_file(os.path.join(self.config.backend_dir, META_FILE_NAME), self.amplify_meta)
        write_json_file(
            os.path.join(self.config.current_cloud_backend_dir, META_FILE_NAME),
            self.current_meta,
        )
        logger.info("Project manifest saved")
