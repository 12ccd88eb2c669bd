# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Deployment reconciliation: the end to end push of a resource diff, and the
scoped AppSync API migration / rollback.
"""

from cfn_push.reconciler.service import DeploymentReconciler

__all__ = ["DeploymentReconciler"]
