# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Apply the root stack to CloudFormation.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, WaiterError

from cfn_push.exceptions import ApplyError
from cfn_push.models import ResourceDescriptor

logger = logging.getLogger(__name__)

NO_UPDATES_MESSAGE = "No updates are to be performed"
FAILED_STATUS_SUFFIXES = ("_FAILED",)
ROOT_STACK_PARAMETERS = ("DeploymentBucketName", "AuthRoleName", "UnauthRoleName")


def get_all_unique_categories(resources: List[ResourceDescriptor]) -> List[str]:
    categories = []
    for resource in resources:
        if resource.category not in categories:
            categories.append(resource.category)
    return categories


def build_user_agent_action(
    resources_to_be_created: List[ResourceDescriptor],
    resources_to_be_updated: List[ResourceDescriptor],
) -> str:
    """
    Summarize the push for the user agent, e.g. "au:c ap:u "

    Each unique category contributes its first two letters followed by c for
    created or u for updated.
    """
    user_agent_action = ""
    for category in get_all_unique_categories(resources_to_be_created):
        user_agent_action += f"{category[:2]}:c "
    for category in get_all_unique_categories(resources_to_be_updated):
        user_agent_action += f"{category[:2]}:u "
    return user_agent_action


class CloudFormationClient:
    """Creates or updates the project's root stack."""

    def __init__(
        self,
        manifest,
        store,
        user_agent_action: str = "",
        cfn_client=None,
        region: Optional[str] = None,
        capabilities: Optional[List[str]] = None,
    ):
        """
        Args:
            manifest: ProjectManifest with the root stack settings
            store: ArtifactStore used to upload the root template
            user_agent_action: Summary appended to the SDK user agent
            cfn_client: Optional boto3 CloudFormation client
            region: AWS region for a client created here
            capabilities: Stack capabilities to acknowledge
        """
        self.manifest = manifest
        self.store = store
        self.user_agent_action = user_agent_action
        self.capabilities = capabilities or ["CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND"]
        if cfn_client is None:
            config = Config(user_agent_extra=user_agent_action.strip() or None)
            cfn_client = boto3.client("cloudformation", region_name=region, config=config)
        self.client = cfn_client

    def stack_exists(self, stack_name: str) -> bool:
        try:
            response = self.client.describe_stacks(StackName=stack_name)
        except ClientError as e:
            if "does not exist" in str(e):
                return False
            raise
        stacks = response.get("Stacks", [])
        return bool(stacks) and stacks[0].get("StackStatus") != "DELETE_COMPLETE"

    def _stack_parameters(self) -> List[Dict[str, Any]]:
        settings = self.manifest.provider_settings()
        return [
            {"ParameterKey": key, "ParameterValue": settings[key]}
            for key in ROOT_STACK_PARAMETERS
            if settings.get(key)
        ]

    def _failure_reason(self, stack_name: str) -> str:
        try:
            events = self.client.describe_stack_events(StackName=stack_name)["StackEvents"]
        except ClientError as e:
            return str(e)
        failures = [
            f"{e['LogicalResourceId']} {e['ResourceStatus']}: {e.get('ResourceStatusReason', '')}"
            for e in events
            if e.get("ResourceStatus", "").endswith(FAILED_STATUS_SUFFIXES)
        ]
        return "; ".join(failures[:5]) or "unknown failure"

    def update_resource_stack(self, file_dir: str, file_name: str) -> Dict[str, Any]:
        """
        Upload the root template and create or update the root stack.

        Returns:
            Dict with the stack name and the operation performed
        """
        stack_name = self.manifest.stack_name()
        template_path = os.path.join(file_dir, file_name)
        bucket = self.store.upload_file(file_name, template_path)
        template_url = self.store.template_url(file_name, bucket)

        request = {
            "StackName": stack_name,
            "TemplateURL": template_url,
            "Parameters": self._stack_parameters(),
            "Capabilities": self.capabilities,
        }

        exists = self.stack_exists(stack_name)
        operation = "update" if exists else "create"
        logger.info(f"Calling {operation}_stack for {stack_name} ({self.user_agent_action.strip()})")
        try:
            if exists:
                self.client.update_stack(**request)
                waiter = self.client.get_waiter("stack_update_complete")
            else:
                self.client.create_stack(**request)
                waiter = self.client.get_waiter("stack_create_complete")
        except ClientError as e:
            if NO_UPDATES_MESSAGE in str(e):
                logger.info(f"Stack {stack_name} is already up to date")
                return {"StackName": stack_name, "Operation": "none"}
            logger.error(f"Failed to {operation} stack {stack_name}: {e}")
            raise ApplyError(stack_name, str(e)) from e

        try:
            waiter.wait(StackName=stack_name, WaiterConfig={"Delay": 10, "MaxAttempts": 720})
        except WaiterError as e:
            reason = self._failure_reason(stack_name)
            logger.error(f"Stack {stack_name} did not reach a complete state: {reason}")
            raise ApplyError(stack_name, reason) from e

        logger.info(f"Stack {stack_name} {operation} complete")
        return {"StackName": stack_name, "Operation": operation}
