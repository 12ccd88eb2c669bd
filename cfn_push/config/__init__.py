# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

logger = logging.getLogger(__name__)

PROVIDER_NAME = "awscloudformation"
NESTED_STACK_FILE_NAME = "nested-cloudformation-stack.yaml"
OPTIONAL_BUILD_DIRECTORY_NAME = "build"
CURRENT_CLOUD_BACKEND_ZIP = "#current-cloud-backend.zip"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true", "yes")


@dataclass
class PushConfig:
    """
    Settings for one push run

    Paths follow the project layout:
        <project_root>/amplify/backend/<category>/<resourceName>/
        <project_root>/amplify/#current-cloud-backend/
    """

    project_root: str = "."
    region: Optional[str] = None
    max_workers: Optional[int] = None
    verbose: bool = False
    skip_validation: bool = False
    stack_capabilities: List[str] = field(
        default_factory=lambda: [
            "CAPABILITY_NAMED_IAM",
            "CAPABILITY_IAM",
            "CAPABILITY_AUTO_EXPAND",
        ]
    )

    def __post_init__(self):
        self.project_root = os.path.abspath(self.project_root)
        self.region = (
            self.region
            or os.environ.get("AWS_REGION")
            or os.environ.get("AWS_DEFAULT_REGION")
        )
        if self.max_workers is None:
            # Auto-detect: typically CPU count or a bit less, capped at 4
            self.max_workers = min(4, (os.cpu_count() or 1) + 1)
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

    @property
    def amplify_dir(self) -> str:
        return os.path.join(self.project_root, "amplify")

    @property
    def backend_dir(self) -> str:
        return os.path.join(self.amplify_dir, "backend")

    @property
    def current_cloud_backend_dir(self) -> str:
        return os.path.join(self.amplify_dir, "#current-cloud-backend")

    @property
    def provider_dir(self) -> str:
        return os.path.join(self.backend_dir, PROVIDER_NAME)

    def resource_dir(self, category: str, resource_name: str) -> str:
        return os.path.normpath(os.path.join(self.backend_dir, category, resource_name))

    @classmethod
    def from_env(cls, **overrides) -> "PushConfig":
        """Build the configuration from CFN_PUSH_* environment variables"""
        max_workers = os.environ.get("CFN_PUSH_MAX_WORKERS")
        values = {
            "project_root": os.environ.get("CFN_PUSH_PROJECT_ROOT", "."),
            "max_workers": int(max_workers) if max_workers else None,
            "verbose": _env_flag("CFN_PUSH_VERBOSE"),
            "skip_validation": _env_flag("CFN_PUSH_SKIP_VALIDATION"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        config = cls(**values)
        logger.debug(f"Loaded push configuration: {config}")
        return config
