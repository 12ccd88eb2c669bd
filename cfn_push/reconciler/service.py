# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import concurrent.futures
import logging
import os
import shutil
from typing import Any, Callable, Dict, List, Optional

import yaml
from rich.console import Console

from cfn_push.appsync import AppSyncFileUploader
from cfn_push.appsync.service import APPSYNC_SERVICE
from cfn_push.cloudformation import CloudFormationClient, build_user_agent_action
from cfn_push.config import (
    CURRENT_CLOUD_BACKEND_ZIP,
    NESTED_STACK_FILE_NAME,
    PROVIDER_NAME,
    PushConfig,
)
from cfn_push.manifest import ProjectManifest
from cfn_push.models import DeploymentStage, ResourceDescriptor, ResourceDiff
from cfn_push.nested_stack import NestedStackComposer
from cfn_push.packaging import ArtifactPackager
from cfn_push.parameters import LEGACY_DEFAULT_PARAMS
from cfn_push.s3 import TEMPLATES_PREFIX, ArtifactStore
from cfn_push.templates import flip_json_to_yaml, get_cfn_files, yaml_path_for
from cfn_push.utils import zip_directory
from cfn_push.validation import TemplateValidator

logger = logging.getLogger(__name__)

API_CATEGORY = "api"
TEMP_DIRECTORY_NAME = ".temp"
CONSOLE_URL = "https://console.aws.amazon.com/cloudformation/home?region={region}#/stacks"
URL_OUTPUT_MARKERS = ("Url", "URL", "Endpoint")


def _no_schema_transform(handle_migration: Callable[..., Any]) -> None:
    """Default schema transform: the project has nothing to compile"""
    return None


class DeploymentReconciler:
    """
    Pushes a resource diff to the cloud.

    A run moves through the DeploymentStage values in order. Any exception
    moves it to FAILED and is re-raised; nothing already uploaded or applied
    is rolled back, and the manifest on disk is only written once the root
    stack has been applied.
    """

    def __init__(
        self,
        config: PushConfig,
        manifest: Optional[ProjectManifest] = None,
        store: Optional[ArtifactStore] = None,
        validator: Optional[TemplateValidator] = None,
        packager: Optional[ArtifactPackager] = None,
        composer: Optional[NestedStackComposer] = None,
        appsync: Optional[AppSyncFileUploader] = None,
        cfn_client_factory: Optional[Callable[[str], CloudFormationClient]] = None,
        schema_transformer: Optional[Callable[..., Any]] = None,
        console: Optional[Console] = None,
    ):
        """
        Args:
            config: Push configuration
            manifest: Project manifest, loaded from config.project_root when omitted
            store: Deployment bucket access
            validator: Template validator
            packager: Artifact packager
            composer: Root stack composer
            appsync: AppSync parameter writer and file uploader
            cfn_client_factory: Callable taking the user agent action and
                returning a CloudFormationClient
            schema_transformer: Callable compiling GraphQL schemas; called with
                a handle_migration keyword that runs an API migration
            console: Rich console for operator output
        """
        self.config = config
        self.console = console or Console()
        self.manifest = manifest or ProjectManifest.load(config)
        self.store = store or ArtifactStore(self.manifest, region=config.region)
        self.validator = validator or TemplateValidator(config.backend_dir)
        self.packager = packager or ArtifactPackager(
            config.backend_dir, self.store, config.max_workers, self.console
        )
        self.composer = composer or NestedStackComposer(
            config.backend_dir, self.manifest.team_provider_info
        )
        self.appsync = appsync or AppSyncFileUploader(
            self.manifest, self.store, config.backend_dir
        )
        self.cfn_client_factory = cfn_client_factory or self._default_cfn_client
        self.schema_transformer = schema_transformer or _no_schema_transform
        self.stage = DeploymentStage.IDLE

    def _default_cfn_client(self, user_agent_action: str) -> CloudFormationClient:
        return CloudFormationClient(
            self.manifest,
            self.store,
            user_agent_action,
            region=self.config.region,
            capabilities=self.config.stack_capabilities,
        )

    def _enter(self, stage: DeploymentStage) -> None:
        logger.debug(f"Deployment stage {self.stage.value} -> {stage.value}")
        self.stage = stage

    def run(self, diff: ResourceDiff) -> Optional[Dict[str, Any]]:
        """
        Push the resources of a diff.

        Returns:
            Result of the root stack update, or None when nothing changed

        Raises:
            Whatever the failing stage raised, after the run is marked FAILED
        """
        self.stage = DeploymentStage.IDLE
        try:
            self.display_resources(diff)
            resources = diff.resources

            self._enter(DeploymentStage.VALIDATING)
            self.console.print("Validating CloudFormation Templates")
            self._validate(resources)

            self._enter(DeploymentStage.PACKAGING)
            self.packager.package(resources)

            self._enter(DeploymentStage.SCHEMA_TRANSFORMING)
            self.schema_transformer(handle_migration=self._handle_migration)

            self._enter(DeploymentStage.PARAMETER_WRITING)
            self.appsync.upload_appsync_files(resources, diff.all_resources)

            self._enter(DeploymentStage.UPLOADING_TEMPLATES)
            self.upload_templates(resources)

            self._enter(DeploymentStage.COMPOSING)
            self.console.print("Updating root stack...")
            result = None
            if diff.has_changes:
                root_stack = self.composer.compose(
                    self.manifest.amplify_meta, self.manifest.env_name
                )
                self._enter(DeploymentStage.APPLYING)
                result = self.apply(
                    root_stack, diff.resources_to_be_created, diff.resources_to_be_updated
                )
            else:
                logger.info("No resource changes, skipping the root stack update")

            self._enter(DeploymentStage.META_UPDATING)
            self.console.print("Updating Amplify Metadata...")
            if resources:
                self.manifest.update_after_push(resources)
            for resource in diff.resources_to_be_deleted:
                self.manifest.update_after_resource_delete(
                    resource.category, resource.resource_name
                )
            self.manifest.save()

            self._enter(DeploymentStage.ARTIFACT_BACKUP)
            self.store_current_cloud_backend()

            self._enter(DeploymentStage.DONE)
            self.console.print("[green]✔ All resources are updated in the cloud[/green]")
            self.display_helpful_urls(resources)
            return result
        except Exception as e:
            failed_stage = self.stage
            self.stage = DeploymentStage.FAILED
            logger.exception(f"Push failed during {failed_stage.value}: {e}")
            self.console.print(
                "[red]✗ An error occurred when pushing the resources to the cloud[/red]"
            )
            raise

    def _validate(self, resources: List[ResourceDescriptor]) -> None:
        if self.config.skip_validation:
            logger.warning("Template validation is disabled")
            return
        self.validator.validate(resources)

    def _handle_migration(self, is_reverting: bool = False, is_cli_migration: bool = False):
        return self.update_stack_for_api_migration(
            API_CATEGORY, None, is_reverting=is_reverting, is_cli_migration=is_cli_migration
        )

    def display_resources(self, diff: ResourceDiff) -> None:
        for title, group in (
            ("Resources to be Created:", diff.resources_to_be_created),
            ("Resources to be Updated:", diff.resources_to_be_updated),
            ("Resources to be Deleted:", diff.resources_to_be_deleted),
        ):
            if not group:
                continue
            self.console.print(f"[cyan]{title}[/cyan]")
            for resource in group:
                self.console.print(
                    yaml.safe_dump(resource.to_dict(), default_flow_style=False, sort_keys=False),
                    markup=False,
                    highlight=False,
                )

    def upload_templates(self, resources: List[ResourceDescriptor]) -> None:
        """
        Upload every template of the given resources and record its location.

        JSON templates without a YAML sibling get one first; both forms are
        uploaded under amplify-cfn-templates/<category>/.
        """
        self.console.print("Updating S3 Templates...")
        uploads = []
        for resource in resources:
            cfn_dir, cfn_files = get_cfn_files(
                self.config.resource_dir(resource.category, resource.resource_name)
            )
            for cfn_file in cfn_files:
                if cfn_file.endswith(".json"):
                    yaml_file = yaml_path_for(cfn_file)
                    if not os.path.exists(os.path.join(cfn_dir, yaml_file)):
                        flip_json_to_yaml(os.path.join(cfn_dir, cfn_file))
                        uploads.append((resource, cfn_dir, yaml_file))
                uploads.append((resource, cfn_dir, cfn_file))

        if not uploads:
            return

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=self.config.max_workers
        ) as executor:
            futures = [
                executor.submit(self._upload_template, resource, cfn_dir, cfn_file)
                for resource, cfn_dir, cfn_file in uploads
            ]
            # Metadata is recorded in submission order once every upload succeeded
            locations = [future.result() for future in futures]

        for resource, template_url in locations:
            details = self.manifest.get_resource(resource.category, resource.resource_name) or {}
            provider_metadata = dict(details.get("providerMetadata") or {})
            provider_metadata["s3TemplateURL"] = template_url
            provider_metadata["logicalId"] = resource.logical_id
            self.manifest.update_after_resource_update(
                resource.category, resource.resource_name, "providerMetadata", provider_metadata
            )

    def _upload_template(self, resource: ResourceDescriptor, cfn_dir: str, cfn_file: str):
        key = f"{TEMPLATES_PREFIX}/{resource.category}/{cfn_file}"
        bucket = self.store.upload_file(key, os.path.join(cfn_dir, cfn_file))
        return resource, self.store.template_url(key, bucket)

    def apply(
        self,
        root_stack: Dict[str, Any],
        resources_to_be_created: List[ResourceDescriptor],
        resources_to_be_updated: List[ResourceDescriptor],
    ) -> Dict[str, Any]:
        """Write the root stack as YAML and create or update it"""
        provider_dir = self.config.provider_dir
        os.makedirs(provider_dir, exist_ok=True)
        nested_stack_path = os.path.join(provider_dir, NESTED_STACK_FILE_NAME)
        logger.info(f"Writing YAML: {nested_stack_path}")
        with open(nested_stack_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(root_stack, f, default_flow_style=False, sort_keys=False)

        user_agent_action = build_user_agent_action(
            resources_to_be_created, resources_to_be_updated
        )
        cfn_client = self.cfn_client_factory(user_agent_action)
        with self.console.status(
            "Updating resources in the cloud. This may take a few minutes..."
        ):
            return cfn_client.update_resource_stack(provider_dir, NESTED_STACK_FILE_NAME)

    def store_current_cloud_backend(self) -> str:
        """Upload a zip of the current cloud backend to the deployment bucket"""
        self.console.print(f"Storing {CURRENT_CLOUD_BACKEND_ZIP} in Deployment Bucket...")
        temp_dir = os.path.join(self.config.backend_dir, TEMP_DIRECTORY_NAME)
        os.makedirs(temp_dir, exist_ok=True)
        zip_path = os.path.join(temp_dir, CURRENT_CLOUD_BACKEND_ZIP)
        try:
            zip_directory(self.config.current_cloud_backend_dir, zip_path)
            self.store.upload_file(CURRENT_CLOUD_BACKEND_ZIP, zip_path)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)
        return CURRENT_CLOUD_BACKEND_ZIP

    def helpful_urls(self, resources: List[ResourceDescriptor]) -> List[str]:
        urls = []
        if self.config.region:
            urls.append(f"Root stack: {CONSOLE_URL.format(region=self.config.region)}")
        for resource in resources:
            details = self.manifest.get_resource(resource.category, resource.resource_name) or {}
            for key, value in (details.get("output") or {}).items():
                if isinstance(value, str) and any(m in key for m in URL_OUTPUT_MARKERS):
                    urls.append(f"{resource.category}:{resource.resource_name} {key}: {value}")
            template_url = (details.get("providerMetadata") or {}).get("s3TemplateURL")
            if template_url:
                urls.append(f"{resource.category}:{resource.resource_name} template: {template_url}")
        return urls

    def display_helpful_urls(self, resources: List[ResourceDescriptor]) -> None:
        for url in self.helpful_urls(resources):
            self.console.print(url, markup=False, highlight=False)

    def update_stack_for_api_migration(
        self,
        category: str = API_CATEGORY,
        resource_name: Optional[str] = None,
        is_reverting: bool = False,
        is_cli_migration: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        Redeploy the project's AppSync API with migrated (or reverted) parameters.

        Args:
            category: Category holding the API
            resource_name: API resource name; when given together with
                is_cli_migration only that resource receives env
            is_reverting: Write parameters in the deprecated form
            is_cli_migration: A project wide migration is running; env is not
                injected when reverting and no operator message is printed on failure

        Returns:
            Result of the root stack update, or None when nothing changed
        """
        diff = self.manifest.get_resource_status(category, resource_name, PROVIDER_NAME)
        try:
            self._validate(diff.resources)

            resources = [r for r in diff.all_resources if r.service == APPSYNC_SERVICE]
            self.packager.package(resources)
            self.appsync.upload_appsync_files(
                resources,
                diff.all_resources,
                use_deprecated_parameters=is_reverting,
                default_params=LEGACY_DEFAULT_PARAMS,
            )
            self.upload_templates(resources)

            result = None
            if resources or diff.resources_to_be_deleted:
                env_name = self.manifest.env_name
                meta = self.manifest.amplify_meta
                if is_reverting and is_cli_migration:
                    root_stack = self.composer.compose(
                        meta, env_name, category, resource_name, APPSYNC_SERVICE, skip_env=True
                    )
                elif is_cli_migration:
                    root_stack = self.composer.compose(
                        meta, env_name, category, resource_name, APPSYNC_SERVICE
                    )
                else:
                    root_stack = self.composer.compose(meta, env_name, category)
                result = self.apply(
                    root_stack, diff.resources_to_be_created, diff.resources_to_be_updated
                )

            self.manifest.update_after_push(resources)
            self.manifest.save()
            return result
        except Exception as e:
            if not is_cli_migration:
                logger.error(f"API migration failed: {e}")
                self.console.print("[red]✗ An error occurred when migrating the API project.[/red]")
            raise
