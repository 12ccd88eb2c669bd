# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Static validation of resource templates before anything is deployed.

Every template is linted in-process with cfn-lint; an error level finding
stops the whole push. When a cfn-lint executable is also installed on the
PATH it is run as a second, advisory opinion whose findings are only logged.
"""

import logging
import os
import shutil
import subprocess
from typing import Callable, List, Optional, Sequence

import yaml
from cfnlint.api import lint_all

from cfn_push.exceptions import ValidationError
from cfn_push.models import ResourceDescriptor
from cfn_push.templates import (
    STRUCTURED_TEMPLATE_EXTENSIONS,
    list_template_files,
    read_template,
    read_template_text,
)

logger = logging.getLogger(__name__)


def _error_matches(matches) -> List:
    """cfn-lint matches at error level (rule ids starting with E)"""
    return [m for m in matches if str(m.rule.id).startswith("E")]


class TemplateValidator:
    """Validates the CloudFormation templates of the resources being pushed."""

    def __init__(
        self,
        backend_dir: str,
        linter: Optional[Callable[[str], Sequence]] = None,
        cli_linter: Optional[str] = None,
    ):
        """
        Args:
            backend_dir: Project backend directory
            linter: In-process linter taking template text and returning matches
            cli_linter: Path of a cfn-lint executable, looked up on PATH when omitted
        """
        self.backend_dir = backend_dir
        self.linter = linter or lint_all
        self.cli_linter = cli_linter if cli_linter is not None else shutil.which("cfn-lint")

    def validate(self, resources: List[ResourceDescriptor]) -> None:
        """
        Validate every template of every resource.

        Raises:
            ValidationError: on the first invalid template
        """
        for resource in resources:
            resource_dir = os.path.normpath(
                os.path.join(self.backend_dir, resource.category, resource.resource_name)
            )
            for cfn_file in list_template_files(resource_dir):
                file_path = os.path.join(resource_dir, cfn_file)
                self.validate_file(resource, file_path)

    def validate_file(self, resource: ResourceDescriptor, file_path: str) -> None:
        resource_id = f"{resource.category}:{resource.resource_name}"
        try:
            if file_path.endswith(STRUCTURED_TEMPLATE_EXTENSIONS):
                logger.info(f"Validating {file_path} with cfn-lint")
                # Parse first so malformed documents surface as validation errors
                read_template(file_path)
                errors = _error_matches(self.linter(read_template_text(file_path)))
                if errors:
                    details = "; ".join(f"{m.rule.id} {m.message}" for m in errors)
                    raise ValueError(details)
        except (ValueError, yaml.YAMLError) as e:
            logger.error(f"Invalid CloudFormation template: {file_path}")
            raise ValidationError(resource_id, file_path, e) from e

        if self.cli_linter:
            self._run_cli_linter(file_path)

    def _run_cli_linter(self, file_path: str) -> int:
        """Run the installed cfn-lint executable; its findings are advisory"""
        logger.info(f"Validating {file_path} with {self.cli_linter}")
        try:
            result = subprocess.run(
                [self.cli_linter, "-t", file_path],
                capture_output=True,
                text=True,
                timeout=120,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"cfn-lint could not be run on {file_path}: {e}")
            return -1

        if result.returncode != 0:
            logger.warning(
                f"cfn-lint reported findings for {file_path}:\n{result.stdout}{result.stderr}"
            )
        return result.returncode
