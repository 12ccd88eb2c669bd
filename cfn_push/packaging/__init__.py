# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Build and upload code archives for resources that need a build.

The archive name carries a hash of the resource's source directory, so an
unchanged resource produces the same archive under the same S3 key on
every run.
"""

import concurrent.futures
import logging
import os
import time
from typing import List, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from cfn_push.models import Artifact, ResourceDescriptor
from cfn_push.s3 import BUILDS_PREFIX
from cfn_push.templates import (
    get_cfn_files,
    read_template,
    set_code_location,
    write_yaml_template,
    yaml_path_for,
)
from cfn_push.utils import get_directory_checksum, zip_directory

logger = logging.getLogger(__name__)

SOURCE_DIRECTORY_NAME = "src"
DIST_DIRECTORY_NAME = "dist"
ARCHIVE_EXCLUDE_DIRS = {"__pycache__", ".git", ".pytest_cache"}


class ArtifactPackager:
    """Packages buildable resources and points their templates at the archives."""

    def __init__(
        self,
        backend_dir: str,
        store,
        max_workers: Optional[int] = None,
        console: Optional[Console] = None,
    ):
        self.backend_dir = backend_dir
        self.store = store
        self.max_workers = max_workers
        self.console = console or Console()

    def resource_dir(self, resource: ResourceDescriptor) -> str:
        return os.path.normpath(
            os.path.join(self.backend_dir, resource.category, resource.resource_name)
        )

    def build_resource(self, resource: ResourceDescriptor) -> Artifact:
        """Zip the resource source directory under a content derived name"""
        resource_dir = self.resource_dir(resource)
        source_dir = os.path.join(resource_dir, SOURCE_DIRECTORY_NAME)
        if not os.path.isdir(source_dir):
            raise FileNotFoundError(f"No source directory to package at {source_dir}")

        checksum = get_directory_checksum(source_dir, ARCHIVE_EXCLUDE_DIRS)
        zip_name = f"{resource.resource_name}-{checksum[:16]}-build.zip"
        dist_dir = os.path.join(resource_dir, DIST_DIRECTORY_NAME)
        zip_path = os.path.join(dist_dir, zip_name)

        if os.path.isdir(dist_dir):
            for old_zip in os.listdir(dist_dir):
                if old_zip.endswith("-build.zip") and old_zip != zip_name:
                    logger.debug(f"Removing stale archive {old_zip}")
                    os.remove(os.path.join(dist_dir, old_zip))

        if not os.path.exists(zip_path):
            zip_directory(source_dir, zip_path, ARCHIVE_EXCLUDE_DIRS)

        return Artifact(
            name=zip_name,
            path=zip_path,
            s3_key=f"{BUILDS_PREFIX}/{zip_name}",
            checksum=checksum,
        )

    def _template_path(self, resource: ResourceDescriptor) -> str:
        cfn_dir, cfn_files = get_cfn_files(self.resource_dir(resource))
        yaml_files = [f for f in cfn_files if f.endswith(".yaml")]
        json_files = [f for f in cfn_files if f.endswith(".json")]
        candidates = yaml_files or json_files
        if not candidates:
            raise FileNotFoundError(
                f"No CloudFormation template for {resource.category}:{resource.resource_name}"
            )
        return os.path.join(cfn_dir, candidates[0])

    def package_resource(self, resource: ResourceDescriptor) -> Artifact:
        """Build, upload and rewrite the template of a single resource"""
        start = time.time()
        artifact = self.build_resource(resource)
        bucket = self.store.upload_file(artifact.s3_key, artifact.path)

        cfn_file_path = self._template_path(resource)
        logger.info(f"Reading CFN File {cfn_file_path}...")
        template = read_template(cfn_file_path)
        kind = set_code_location(template, bucket, artifact.s3_key)
        logger.debug(f"{resource.resource_name} uses a {kind.value} function resource")

        if cfn_file_path.endswith(".json"):
            os.remove(cfn_file_path)
            cfn_file_path = yaml_path_for(cfn_file_path)
        write_yaml_template(cfn_file_path, template)

        self.console.print(
            f"[dim]  {resource.resource_name}: packaged in {time.time() - start:.1f}s[/dim]"
        )
        return artifact

    def package(self, resources: List[ResourceDescriptor]) -> List[Artifact]:
        """
        Package every resource with build set, concurrently.

        The first failure is re-raised once all submitted work has settled.
        """
        resources = [r for r in resources if r.build]
        if not resources:
            return []

        names = ", ".join(f"{r.category}:{r.resource_name}" for r in resources)
        self.console.print(f"[cyan]Packaging resources: {names}[/cyan]")

        artifacts = []
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
            transient=False,
        ) as progress:
            main_task = progress.add_task("[cyan]Packaging...", total=len(resources))

            # Use ThreadPoolExecutor for I/O bound operations (zip and upload)
            with concurrent.futures.ThreadPoolExecutor(
                max_workers=self.max_workers
            ) as executor:
                future_to_resource = {
                    executor.submit(self.package_resource, resource): resource
                    for resource in resources
                }

                for future in concurrent.futures.as_completed(future_to_resource):
                    resource = future_to_resource[future]
                    try:
                        artifacts.append(future.result())
                    except Exception as e:
                        logger.error(
                            f"Packaging {resource.category}:{resource.resource_name} failed: {e}"
                        )
                        raise
                    progress.update(main_task, advance=1)

        return artifacts
