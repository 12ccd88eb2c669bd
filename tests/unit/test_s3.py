# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Unit tests for the deployment bucket store.
"""

import io
from unittest.mock import MagicMock

import boto3
import pytest
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError
from botocore.stub import Stubber
from cfn_push.exceptions import UploadError
from cfn_push.s3 import ArtifactStore


def _client_error(code, operation="PutObject"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def s3_client():
    return MagicMock()


@pytest.fixture
def store(s3_client):
    manifest = MagicMock()
    manifest.deployment_bucket_name.return_value = "deploy-bucket"
    return ArtifactStore(manifest, s3_client=s3_client)


@pytest.mark.unit
class TestUploads:
    def test_upload_path(self, store, s3_client):
        bucket = store.upload_file("amplify-builds/fn1.zip", "/tmp/fn1.zip")

        assert bucket == "deploy-bucket"
        s3_client.upload_file.assert_called_once_with(
            "/tmp/fn1.zip", "deploy-bucket", "amplify-builds/fn1.zip"
        )

    def test_upload_bytes(self, store, s3_client):
        store.upload_file("key", b"data")

        s3_client.put_object.assert_called_once_with(Bucket="deploy-bucket", Key="key", Body=b"data")

    def test_upload_error(self, store, s3_client):
        s3_client.upload_file.side_effect = S3UploadFailedError(
            "Failed to upload /tmp/file to deploy-bucket/key: AccessDenied"
        )

        with pytest.raises(UploadError) as exc_info:
            store.upload_file("key", "/tmp/file")

        assert exc_info.value.bucket == "deploy-bucket"
        assert exc_info.value.key == "key"

    def test_upload_error_from_s3(self, tmp_path):
        client = boto3.client(
            "s3",
            region_name="us-east-1",
            aws_access_key_id="testing",
            aws_secret_access_key="testing",
        )
        manifest = MagicMock()
        manifest.deployment_bucket_name.return_value = "deploy-bucket"
        archive = tmp_path / "fn1.zip"
        archive.write_bytes(b"zip")

        with Stubber(client) as stubber:
            stubber.add_client_error("put_object", "AccessDenied", http_status_code=403)
            with pytest.raises(UploadError) as exc_info:
                ArtifactStore(manifest, s3_client=client).upload_file(
                    "amplify-builds/fn1.zip", str(archive)
                )

        assert exc_info.value.key == "amplify-builds/fn1.zip"

    def test_upload_directory(self, store, s3_client, tmp_path):
        (tmp_path / "resolvers").mkdir()
        (tmp_path / "schema.graphql").write_text("type Todo { id: ID! }")
        (tmp_path / "resolvers" / "Query.getTodo.req.vtl").write_text("{}")

        count = store.upload_directory(str(tmp_path), "amplify-appsync-files/abc")

        assert count == 2
        keys = [c.args[2] for c in s3_client.upload_file.call_args_list]
        assert keys == [
            "amplify-appsync-files/abc/schema.graphql",
            "amplify-appsync-files/abc/resolvers/Query.getTodo.req.vtl",
        ]

    def test_template_url(self, store):
        assert (
            store.template_url("amplify-cfn-templates/api/t.yaml")
            == "https://deploy-bucket.s3.amazonaws.com/amplify-cfn-templates/api/t.yaml"
        )
        assert store.template_url("k", "other") == "https://other.s3.amazonaws.com/k"

    def test_get_file(self, store, s3_client):
        s3_client.get_object.return_value = {"Body": io.BytesIO(b"zip")}

        assert store.get_file("#current-cloud-backend.zip", "prod") == b"zip"
        store.manifest.deployment_bucket_name.assert_called_with("prod")


@pytest.mark.unit
class TestBucketLifecycle:
    def test_bucket_exists(self, store, s3_client):
        assert store.bucket_exists("b") is True

        s3_client.head_bucket.side_effect = _client_error("404", "HeadBucket")
        assert store.bucket_exists("b") is False

    def test_bucket_exists_other_error(self, store, s3_client):
        s3_client.head_bucket.side_effect = _client_error("403", "HeadBucket")

        with pytest.raises(ClientError):
            store.bucket_exists("b")

    def test_create_existing_bucket(self, store, s3_client):
        assert store.create_bucket("b", "eu-west-1") is None
        s3_client.create_bucket.assert_not_called()

    def test_create_bucket_waits(self, store, s3_client):
        s3_client.head_bucket.side_effect = _client_error("404", "HeadBucket")

        assert store.create_bucket("b", "eu-west-1") == "b"

        s3_client.create_bucket.assert_called_once_with(
            Bucket="b", CreateBucketConfiguration={"LocationConstraint": "eu-west-1"}
        )
        s3_client.get_waiter.assert_called_once_with("bucket_exists")
        s3_client.get_waiter.return_value.wait.assert_called_once_with(Bucket="b")

    def test_create_bucket_us_east_1(self, store, s3_client):
        s3_client.head_bucket.side_effect = _client_error("NoSuchBucket", "HeadBucket")

        store.create_bucket("b", "us-east-1")

        s3_client.create_bucket.assert_called_once_with(Bucket="b")

    def test_delete_bucket(self, store, s3_client):
        s3_client.get_paginator.return_value.paginate.return_value = [
            {"Contents": [{"Key": "a"}, {"Key": "b"}]},
            {},
        ]

        store.delete_bucket("b")

        assert s3_client.delete_object.call_count == 2
        s3_client.delete_bucket.assert_called_once_with(Bucket="b")
