#!/usr/bin/env python

# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

from setuptools import find_packages, setup

# Core dependencies required for all installations
install_requires = [
    "boto3>=1.38.36",  # S3 and CloudFormation
    "PyYAML>=6.0.2",  # Root stack serialization
    "cfn-flip>=1.3.0",  # CloudFormation aware JSON/YAML loading and flipping
    "cfn-lint>=1.0.0",  # Static template validation
    "rich>=13.7.0",  # Operator console output and progress
]

# Optional dependencies by component
extras_require = {
    # Command line wrapper
    "cli": [
        "typer>=0.12.0",
        "loguru>=0.7.2",
        "python-dotenv>=1.1.0,<2.0.0",
    ],
    # Testing dependencies
    "test": [
        "pytest>=7.4.0",
        "pytest-cov>=4.1.0",
        "pytest-xdist>=3.3.1",  # For parallel test execution
        "typer>=0.12.0",
        "loguru>=0.7.2",
        "python-dotenv>=1.1.0,<2.0.0",
    ],
}

setup(
    name="cfn_push",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"cfn_push": ["templates/data/*.json"]},
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        "console_scripts": [
            "cfn-push=cfn_push.cli.main:app",
        ],
    },
)
