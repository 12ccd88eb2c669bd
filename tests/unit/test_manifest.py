# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Unit tests for the project manifest.
"""

import json
import os

import pytest
from cfn_push.manifest import ProjectManifest


@pytest.fixture
def deployed_project(config, write_files, entry, storage_template):
    """auth unchanged, storage changed, function new, api removed"""
    backend = config.backend_dir
    cloud = config.current_cloud_backend_dir
    write_files(backend, {"auth/cognito1/template.yml": "Resources: {}\n"})
    write_files(cloud, {"auth/cognito1/template.yml": "Resources: {}\n"})
    write_files(backend, {"storage/s3bucket/s3-cloudformation-template.json": storage_template})
    write_files(cloud, {"storage/s3bucket/s3-cloudformation-template.json": {"old": True}})
    write_files(backend, {"function/fn1/src/index.py": ""})
    write_files(cloud, {"api/oldapi/schema.graphql": "type Q { id: ID }"})

    return {
        "amplify_meta": {
            "auth": {"cognito1": entry("Cognito")},
            "storage": {"s3bucket": entry("S3")},
            "function": {"fn1": entry("Lambda", build=True)},
        },
        "current_meta": {
            "auth": {"cognito1": entry("Cognito")},
            "storage": {"s3bucket": entry("S3")},
            "api": {"oldapi": entry("AppSync")},
        },
    }


@pytest.mark.unit
class TestLoad:
    def test_load_from_project(self, config, write_files):
        write_files(
            config.amplify_dir,
            {
                "backend/amplify-meta.json": {"api": {"myapi": {"service": "AppSync"}}},
                "#current-cloud-backend/amplify-meta.json": {},
                "team-provider-info.json": {
                    "dev": {"awscloudformation": {"DeploymentBucketName": "dev-bucket"}}
                },
                ".config/local-env-info.json": {"envName": "dev"},
            },
        )

        manifest = ProjectManifest.load(config)

        assert manifest.env_name == "dev"
        assert manifest.get_env_info() == {"envName": "dev"}
        assert manifest.get_resource("api", "myapi") == {"service": "AppSync"}
        assert manifest.deployment_bucket_name() == "dev-bucket"
        assert set(manifest.get_project_details()) == {
            "amplifyMeta",
            "teamProviderInfo",
            "localEnvInfo",
        }

    def test_load_empty_project(self, config):
        manifest = ProjectManifest.load(config)

        assert manifest.amplify_meta == {}
        assert manifest.categories() == []
        assert manifest.env_name is None


@pytest.mark.unit
class TestProviderSettings:
    def test_meta_providers_first(self, make_manifest):
        manifest = make_manifest(
            team_provider_info={"dev": {"awscloudformation": {"DeploymentBucketName": "tpi"}}}
        )

        assert manifest.deployment_bucket_name() == "amplify-app-dev-deployment"
        assert manifest.stack_name() == "amplify-app-dev"
        assert manifest.deployment_bucket_name("dev") == "tpi"

    def test_missing_bucket(self, config):
        manifest = ProjectManifest(config, {}, {}, {}, {"envName": "dev"})

        with pytest.raises(KeyError):
            manifest.deployment_bucket_name()
        with pytest.raises(KeyError):
            manifest.stack_name()

    def test_categories_skip_providers(self, make_manifest, entry):
        manifest = make_manifest({"api": {"myapi": entry("AppSync")}})

        assert manifest.categories() == ["api"]


@pytest.mark.unit
class TestResourceStatus:
    def test_diff(self, make_manifest, deployed_project):
        manifest = make_manifest(**deployed_project)

        diff = manifest.get_resource_status()

        assert [r.identity for r in diff.resources_to_be_created] == [("function", "fn1")]
        assert [r.identity for r in diff.resources_to_be_updated] == [("storage", "s3bucket")]
        assert [r.identity for r in diff.resources_to_be_deleted] == [("api", "oldapi")]
        assert len(diff.all_resources) == 3

    def test_filtered_by_category(self, make_manifest, deployed_project):
        manifest = make_manifest(**deployed_project)

        diff = manifest.get_resource_status(category="storage")

        assert diff.resources_to_be_created == []
        assert [r.identity for r in diff.all_resources] == [("storage", "s3bucket")]

    def test_filtered_by_provider(self, make_manifest, deployed_project):
        deployed_project["amplify_meta"]["function"]["fn1"]["providerPlugin"] = "other"
        manifest = make_manifest(**deployed_project)

        diff = manifest.get_resource_status(provider="awscloudformation")

        assert diff.resources_to_be_created == []


@pytest.mark.unit
class TestUpdates:
    def test_update_after_push(self, config, make_manifest, deployed_project):
        manifest = make_manifest(**deployed_project)
        diff = manifest.get_resource_status()

        manifest.update_after_push(diff.resources)

        details = manifest.get_resource("function", "fn1")
        assert details["lastPushTimeStamp"]
        assert len(details["lastPushDirHash"]) == 64
        assert manifest.current_meta["function"]["fn1"] == details
        assert manifest.current_meta["providers"] == manifest.amplify_meta["providers"]
        assert os.path.exists(
            os.path.join(config.current_cloud_backend_dir, "function", "fn1", "src", "index.py")
        )
        # Nothing is written until save()
        assert not os.path.exists(os.path.join(config.backend_dir, "amplify-meta.json"))
        assert manifest.get_resource_status().has_changes is True

    def test_pushed_resources_are_unchanged_afterwards(self, make_manifest, deployed_project):
        manifest = make_manifest(**deployed_project)
        diff = manifest.get_resource_status()

        manifest.update_after_push(diff.resources)

        after = manifest.get_resource_status()
        assert after.resources_to_be_created == []
        assert after.resources_to_be_updated == []

    def test_update_after_resource_update(self, make_manifest, entry):
        manifest = make_manifest({"api": {"myapi": entry("AppSync")}})

        manifest.update_after_resource_update("api", "myapi", "providerMetadata", {"logicalId": "x"})

        assert manifest.get_resource("api", "myapi")["providerMetadata"] == {"logicalId": "x"}
        with pytest.raises(KeyError):
            manifest.update_after_resource_update("api", "missing", "k", "v")

    def test_update_after_resource_delete(self, config, make_manifest, deployed_project):
        manifest = make_manifest(**deployed_project)

        manifest.update_after_resource_delete("api", "oldapi")

        assert "api" not in manifest.current_meta
        assert not os.path.exists(os.path.join(config.current_cloud_backend_dir, "api", "oldapi"))

    def test_save(self, config, make_manifest, entry):
        manifest = make_manifest({"api": {"myapi": entry("AppSync")}}, current_meta={"api": {}})

        manifest.save()

        with open(os.path.join(config.backend_dir, "amplify-meta.json")) as f:
            assert json.load(f)["api"]["myapi"]["service"] == "AppSync"
        with open(os.path.join(config.current_cloud_backend_dir, "amplify-meta.json")) as f:
            assert json.load(f) == {"api": {}}
