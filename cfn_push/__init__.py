# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

# Use true lazy loading for all submodules
__version__ = "0.1.0"

# Cache for lazy-loaded submodules
_submodules = {}


def __getattr__(name):
    """Lazy load submodules only when accessed"""
    if name in [
        "appsync",
        "cloudformation",
        "config",
        "exceptions",
        "manifest",
        "models",
        "nested_stack",
        "packaging",
        "parameters",
        "reconciler",
        "s3",
        "templates",
        "utils",
        "validation",
    ]:
        if name not in _submodules:
            _submodules[name] = __import__(f"cfn_push.{name}", fromlist=[name])
        return _submodules[name]

    # Handle specific imports from models
    if name in ["ResourceDescriptor", "ResourceDiff", "DeploymentStage"]:
        if "models" not in _submodules:
            _submodules["models"] = __import__("cfn_push.models", fromlist=["models"])
        return getattr(_submodules["models"], name)

    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


# Define what should be available when using "from cfn_push import *"
__all__ = [
    "appsync",
    "cloudformation",
    "config",
    "exceptions",
    "manifest",
    "models",
    "nested_stack",
    "packaging",
    "parameters",
    "reconciler",
    "s3",
    "templates",
    "utils",
    "validation",
    "ResourceDescriptor",
    "ResourceDiff",
    "DeploymentStage",
]
