# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Deployment bucket access.

Artifacts and templates are stored under deterministic keys in the project's
deployment bucket:

    amplify-builds/<resourceName>-<hash>-build.zip
    amplify-cfn-templates/<category>/<template file>
    amplify-appsync-files/<hash>/...
    #current-cloud-backend.zip
"""

import logging
import os
from typing import Optional, Union

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError

from cfn_push.exceptions import UploadError

logger = logging.getLogger(__name__)

BUILDS_PREFIX = "amplify-builds"
TEMPLATES_PREFIX = "amplify-cfn-templates"
APPSYNC_PREFIX = "amplify-appsync-files"


class ArtifactStore:
    """Uploads and downloads deployment artifacts."""

    def __init__(self, manifest, s3_client=None, region: Optional[str] = None):
        """
        Initialize the store.

        Args:
            manifest: ProjectManifest used to look up the deployment bucket
            s3_client: Optional boto3 S3 client
            region: AWS region for a client created here
        """
        self.manifest = manifest
        self.client = s3_client or boto3.client("s3", region_name=region)

    @property
    def bucket(self) -> str:
        return self.manifest.deployment_bucket_name()

    def upload_file(self, key: str, body: Union[str, bytes]) -> str:
        """
        Upload a local file path or raw bytes to the deployment bucket

        Returns:
            The bucket name the object was written to
        """
        bucket = self.bucket
        logger.info(f"s3.PutObject(s3://{bucket}/{key})")
        try:
            if isinstance(body, bytes):
                self.client.put_object(Bucket=bucket, Key=key, Body=body)
            else:
                self.client.upload_file(body, bucket, key)
        except (ClientError, S3UploadFailedError, OSError) as e:
            logger.error(f"Error uploading s3://{bucket}/{key}: {e}")
            raise UploadError(bucket, key, e) from e
        logger.info(f"Finished s3.PutObject(s3://{bucket}/{key})")
        return bucket

    def upload_directory(self, local_dir: str, key_prefix: str) -> int:
        """Upload every file under local_dir below key_prefix, returns the file count"""
        count = 0
        for root, dirs, files in os.walk(local_dir):
            dirs.sort()
            for file in sorted(files):
                local_path = os.path.join(root, file)
                relative_path = os.path.relpath(local_path, local_dir).replace(os.sep, "/")
                self.upload_file(f"{key_prefix}/{relative_path}", local_path)
                count += 1
        return count

    def get_file(self, key: str, env_name: Optional[str] = None) -> bytes:
        bucket = self.manifest.deployment_bucket_name(env_name)
        logger.info(f"s3.GetObject(s3://{bucket}/{key})")
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            logger.error(f"Error reading s3://{bucket}/{key}: {e}")
            raise

    def template_url(self, key: str, bucket: Optional[str] = None) -> str:
        return f"https://{bucket or self.bucket}.s3.amazonaws.com/{key}"

    def bucket_exists(self, bucket_name: str) -> bool:
        try:
            self.client.head_bucket(Bucket=bucket_name)
            return True
        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            if error_code in ("404", "NoSuchBucket"):
                return False
            raise

    def create_bucket(self, bucket_name: str, region: Optional[str] = None) -> Optional[str]:
        """Create the bucket if necessary and wait until it exists"""
        if self.bucket_exists(bucket_name):
            logger.info(f"Using existing bucket: {bucket_name}")
            return None

        logger.warning(
            "The specified S3 bucket to store the CloudFormation templates is not present. "
            f"Creating bucket: {bucket_name}"
        )
        if not region or region == "us-east-1":
            self.client.create_bucket(Bucket=bucket_name)
        else:
            self.client.create_bucket(
                Bucket=bucket_name,
                CreateBucketConfiguration={"LocationConstraint": region},
            )
        self.client.get_waiter("bucket_exists").wait(Bucket=bucket_name)
        logger.info(f"S3 bucket successfully created: {bucket_name}")
        return bucket_name

    def delete_all_objects(self, bucket_name: str) -> int:
        paginator = self.client.get_paginator("list_objects_v2")
        deleted = 0
        for page in paginator.paginate(Bucket=bucket_name):
            for obj in page.get("Contents", []):
                self.client.delete_object(Bucket=bucket_name, Key=obj["Key"])
                deleted += 1
        logger.info(f"Deleted {deleted} objects from {bucket_name}")
        return deleted

    def delete_bucket(self, bucket_name: str) -> None:
        self.delete_all_objects(bucket_name)
        self.client.delete_bucket(Bucket=bucket_name)
        logger.info(f"Deleted bucket {bucket_name}")
