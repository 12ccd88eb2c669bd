# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Unit tests for root stack composition.
"""

import copy

import pytest
from cfn_push.exceptions import MissingProviderPlugin, MissingTemplateLocation
from cfn_push.nested_stack import NestedStackComposer
from cfn_push.templates import ROOT_STACK_TEMPLATE, load_data_template

TEMPLATE_BASE = "https://deploy.s3.amazonaws.com/amplify-cfn-templates"
SKELETON_RESOURCES = {"DeploymentBucket", "AuthRole", "UnauthRole"}


@pytest.fixture
def composer(tmp_path):
    return NestedStackComposer(str(tmp_path))


@pytest.fixture
def project_meta(entry):
    return {
        "providers": {"awscloudformation": {"DeploymentBucketName": "deploy"}},
        "auth": {
            "cognito1": entry("Cognito", template_url=f"{TEMPLATE_BASE}/auth/cognito1.yml"),
            "userPoolGroups": entry(
                "Cognito-UserPool-Groups",
                depends_on=[
                    {"category": "auth", "resourceName": "cognito1", "attributes": ["UserPoolId"]}
                ],
                template_url=f"{TEMPLATE_BASE}/auth/template.json",
            ),
        },
        "api": {
            "myapi": entry(
                "AppSync", template_url=f"{TEMPLATE_BASE}/api/cloudformation-template.json"
            )
        },
        "storage": {
            "s3bucket": entry(
                "S3", template_url=f"{TEMPLATE_BASE}/storage/s3-cloudformation-template.json"
            )
        },
    }


@pytest.mark.unit
class TestCompose:
    def test_one_child_stack_per_resource(self, composer, project_meta):
        root_stack = composer.compose(project_meta, "dev")

        children = {
            logical_id
            for logical_id, resource in root_stack["Resources"].items()
            if resource["Type"] == "AWS::CloudFormation::Stack"
        }
        assert children == {"authcognito1", "authuserPoolGroups", "apimyapi", "storages3bucket"}

    def test_storage_child_stack(self, tmp_path, write_files, entry):
        write_files(
            str(tmp_path),
            {"storage/s3bucket/parameters.json": {"bucketName": "photos", "tags": ["a", "b"]}},
        )
        meta = {
            "storage": {
                "s3bucket": entry(
                    "S3", template_url=f"{TEMPLATE_BASE}/storage/s3-cloudformation-template.json"
                )
            }
        }

        root_stack = NestedStackComposer(str(tmp_path)).compose(meta, "dev")

        assert root_stack["Resources"]["storages3bucket"] == {
            "Type": "AWS::CloudFormation::Stack",
            "Properties": {
                "TemplateURL": f"{TEMPLATE_BASE}/storage/s3-cloudformation-template.yaml",
                "Parameters": {"bucketName": "photos", "tags": "a,b", "env": "dev"},
            },
        }
        assert meta["storage"]["s3bucket"]["providerMetadata"]["s3TemplateURL"].endswith(".yaml")

    def test_dependency_reference_parameters(self, composer, project_meta):
        root_stack = composer.compose(project_meta, "dev")

        parameters = root_stack["Resources"]["authuserPoolGroups"]["Properties"]["Parameters"]
        assert parameters["authcognito1UserPoolId"] == {
            "Fn::GetAtt": ["authcognito1", "Outputs.UserPoolId"]
        }

    def test_auth_wiring(self, composer, project_meta):
        root_stack = composer.compose(project_meta, "dev")

        function = root_stack["Resources"]["UpdateRolesWithIDPFunction"]
        outputs = root_stack["Resources"]["UpdateRolesWithIDPFunctionOutputs"]
        assert function["DependsOn"][0] == "authcognito1"
        assert outputs["Properties"]["idpId"]["Fn::GetAtt"] == [
            "authcognito1",
            "Outputs.IdentityPoolId",
        ]
        assert "UpdateRolesWithIDPFunctionRole" in root_stack["Resources"]

    def test_user_pool_groups_alone_is_not_auth(self, composer, project_meta):
        del project_meta["auth"]["cognito1"]
        project_meta["auth"]["userPoolGroups"]["dependsOn"] = []

        root_stack = composer.compose(project_meta, "dev")

        assert "UpdateRolesWithIDPFunction" not in root_stack["Resources"]

    def test_empty_project_is_skeleton(self, composer):
        assert composer.compose({}, "dev") == load_data_template(ROOT_STACK_TEMPLATE)
        assert set(composer.compose({"providers": {}}, "dev")["Resources"]) == SKELETON_RESOURCES

    def test_deterministic(self, composer, project_meta):
        first = composer.compose(copy.deepcopy(project_meta), "dev")
        second = composer.compose(copy.deepcopy(project_meta), "dev")

        assert first == second

    def test_env_for_every_resource(self, composer, project_meta):
        root_stack = composer.compose(project_meta, "prod")

        for logical_id in ("authcognito1", "apimyapi", "storages3bucket"):
            assert root_stack["Resources"][logical_id]["Properties"]["Parameters"]["env"] == "prod"

    def test_env_only_for_migration_target(self, composer, project_meta):
        root_stack = composer.compose(project_meta, "dev", "api", "myapi", "AppSync")

        resources = root_stack["Resources"]
        assert resources["apimyapi"]["Properties"]["Parameters"]["env"] == "dev"
        assert "env" not in resources["storages3bucket"]["Properties"]["Parameters"]

    def test_skip_env(self, composer, project_meta):
        root_stack = composer.compose(project_meta, "dev", "api", "myapi", "AppSync", skip_env=True)

        for logical_id in ("authcognito1", "apimyapi", "storages3bucket"):
            assert "env" not in root_stack["Resources"][logical_id]["Properties"]["Parameters"]

    def test_missing_provider_plugin(self, composer, project_meta, entry):
        project_meta["function"] = {"fn1": entry("Lambda", provider_plugin=None)}

        with pytest.raises(MissingProviderPlugin) as exc_info:
            composer.compose(project_meta, "dev")
        assert exc_info.value.resource_name == "fn1"

    def test_missing_template_location(self, composer, project_meta, entry):
        project_meta["function"] = {"fn1": entry("Lambda")}

        with pytest.raises(MissingTemplateLocation):
            composer.compose(project_meta, "dev")

    def test_parameter_loader(self, project_meta, tmp_path):
        calls = []

        def loader(category, resource_name):
            calls.append((category, resource_name))
            return {"custom": f"{category}-{resource_name}"}

        composer = NestedStackComposer(str(tmp_path), parameter_loader=loader)
        root_stack = composer.compose(project_meta, "dev")

        assert ("api", "myapi") in calls
        assert root_stack["Resources"]["apimyapi"]["Properties"]["Parameters"]["custom"] == (
            "api-myapi"
        )
