# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
AppSync API deployment files.

Writes build/parameters.json for the project's GraphQL API and uploads its
build directory (schema, resolvers, stacks) under a deployment root key.
"""

from cfn_push.appsync.service import AppSyncFileUploader, is_api_key_configured

__all__ = ["AppSyncFileUploader", "is_api_key_configured"]
