# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Root stack composition.

The root stack holds one AWS::CloudFormation::Stack per declared resource,
keyed by category + resourceName, plus the identity pool role updater when
the project has an auth resource.
"""

import logging
from typing import Any, Callable, Dict, Optional

from cfn_push.exceptions import MissingProviderPlugin
from cfn_push.manifest import PROVIDERS_CATEGORY
from cfn_push.models import NESTED_STACK_TYPE
from cfn_push.parameters import (
    load_resource_parameters,
    resolve_parameters,
    resolve_template_url,
)
from cfn_push.templates import (
    ROOT_STACK_TEMPLATE,
    UPDATE_IDP_ROLES_TEMPLATE,
    load_data_template,
)

logger = logging.getLogger(__name__)

AUTH_CATEGORY = "auth"
USER_POOL_GROUPS = "userPoolGroups"


class NestedStackComposer:
    """Builds the root stack document from the project manifest."""

    def __init__(
        self,
        backend_dir: str,
        team_provider_info: Optional[Dict[str, Any]] = None,
        parameter_loader: Optional[Callable[[str, str], Dict[str, Any]]] = None,
    ):
        """
        Args:
            backend_dir: Project backend directory
            team_provider_info: Environment specific parameter overrides
            parameter_loader: Callable (category, resource_name) -> parameters,
                defaults to reading the resource's parameters files
        """
        self.backend_dir = backend_dir
        self.team_provider_info = team_provider_info
        self.parameter_loader = parameter_loader

    def _load_parameters(self, category: str, resource_name: str, env_name: Optional[str]):
        if self.parameter_loader:
            return self.parameter_loader(category, resource_name)
        return load_resource_parameters(
            self.backend_dir, category, resource_name, self.team_provider_info, env_name
        )

    def compose(
        self,
        amplify_meta: Dict[str, Any],
        env_name: Optional[str],
        category: Optional[str] = None,
        resource_name: Optional[str] = None,
        service: Optional[str] = None,
        skip_env: bool = False,
    ) -> Dict[str, Any]:
        """
        Build the root stack.

        Args:
            amplify_meta: Category/resource mapping of the project manifest
            env_name: Current environment name
            category, resource_name, service: Migration target; when
                resource_name is given only that resource receives env
            skip_env: Inject env into no resource at all

        Returns:
            The root stack document

        Raises:
            MissingProviderPlugin: resource without providerPlugin
            MissingTemplateLocation: resource whose template was never uploaded
            MissingDependency: dependency edge to an undeclared resource
        """
        logger.info("Building Root Stack...")
        root_stack = load_data_template(ROOT_STACK_TEMPLATE)
        target = (category, resource_name, service) if resource_name else None
        auth_resource_name = None

        for current_category, resources in amplify_meta.items():
            if current_category == PROVIDERS_CATEGORY:
                continue
            for current_resource, details in resources.items():
                logger.info(f"Forming nested stack for {current_category}:{current_resource}")
                if current_category == AUTH_CATEGORY and current_resource != USER_POOL_GROUPS:
                    auth_resource_name = current_resource

                if not details.get("providerPlugin"):
                    logger.error(f"Missing providerPlugin: {details}")
                    raise MissingProviderPlugin(current_category, current_resource)

                parameters = resolve_parameters(
                    current_category,
                    current_resource,
                    amplify_meta,
                    env_name,
                    parameters=self._load_parameters(current_category, current_resource, env_name),
                    target=target,
                    skip_env=skip_env,
                )
                template_url = resolve_template_url(current_category, current_resource, details)

                logical_id = current_category + current_resource
                if logical_id in root_stack["Resources"]:
                    raise ValueError(f"Duplicate logical id {logical_id} in root stack")

                logger.info(f"Adding nested stack {template_url}")
                root_stack["Resources"][logical_id] = {
                    "Type": NESTED_STACK_TYPE,
                    "Properties": {
                        "TemplateURL": template_url,
                        "Parameters": parameters,
                    },
                }

        if auth_resource_name:
            update_idp_roles_in_nested_stack(root_stack, auth_resource_name)
        return root_stack


def update_idp_roles_in_nested_stack(root_stack: Dict[str, Any], auth_resource_name: str) -> None:
    """Add the function that points the auth/unauth roles at the identity pool"""
    auth_logical_id = AUTH_CATEGORY + auth_resource_name
    idp_update_roles = load_data_template(UPDATE_IDP_ROLES_TEMPLATE)

    idp_update_roles["UpdateRolesWithIDPFunction"]["DependsOn"].insert(0, auth_logical_id)
    idp_update_roles["UpdateRolesWithIDPFunctionOutputs"]["Properties"]["idpId"][
        "Fn::GetAtt"
    ].insert(0, auth_logical_id)

    root_stack["Resources"].update(idp_update_roles)
