# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import json
import logging
import pprint
import sys
from typing import Optional

import typer
from dotenv import load_dotenv
from loguru import logger

from cfn_push.config import PROVIDER_NAME, PushConfig
from cfn_push.manifest import ProjectManifest
from cfn_push.reconciler import DeploymentReconciler

load_dotenv()

app = typer.Typer()
env_app = typer.Typer()
app.add_typer(env_app, name="env", help="Inspect project environments")


def _load_config(project_root: Optional[str], **overrides) -> PushConfig:
    return PushConfig.from_env(project_root=project_root, **overrides)


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """
    Push backend resources as one nested CloudFormation stack
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def push(
    project_root: Optional[str] = typer.Option(None, "--project-root", help="Project directory"),
    max_workers: Optional[int] = typer.Option(None, "--max-workers", help="Concurrent workers"),
    skip_validation: bool = typer.Option(
        False, "--skip-validation", help="Do not lint templates before deploying"
    ),
):
    """
    Deploy created, updated and deleted resources
    """
    try:
        config = _load_config(
            project_root, max_workers=max_workers, skip_validation=skip_validation or None
        )
        reconciler = DeploymentReconciler(config)
        diff = reconciler.manifest.get_resource_status(provider=PROVIDER_NAME)
        if not diff.has_changes:
            typer.echo("No changes detected")
        reconciler.run(diff)
        typer.echo("Push Complete!")
    except Exception as e:
        logger.exception(f"Error during push: {str(e)}")
        typer.echo(f"Push failed: {str(e)}", err=True)
        sys.exit(1)


@app.command()
def status(
    project_root: Optional[str] = typer.Option(None, "--project-root", help="Project directory"),
    category: Optional[str] = typer.Option(None, "--category", help="Only this category"),
):
    """
    Show which resources a push would create, update or delete
    """
    try:
        manifest = ProjectManifest.load(_load_config(project_root))
        diff = manifest.get_resource_status(category=category)
        changed = set()
        for operation, group in (
            ("Create", diff.resources_to_be_created),
            ("Update", diff.resources_to_be_updated),
            ("Delete", diff.resources_to_be_deleted),
        ):
            for resource in group:
                changed.add(resource.identity)
                typer.echo(f"{resource.category:<12} {resource.resource_name:<30} {operation}")
        for resource in diff.all_resources:
            if resource.identity not in changed:
                typer.echo(f"{resource.category:<12} {resource.resource_name:<30} No Change")
    except Exception as e:
        logger.exception(f"Error reading project status: {str(e)}")
        typer.echo(f"Status failed: {str(e)}", err=True)
        sys.exit(1)


@app.command("migrate-api")
def migrate_api(
    project_root: Optional[str] = typer.Option(None, "--project-root", help="Project directory"),
    resource_name: Optional[str] = typer.Option(None, "--resource-name", help="API resource name"),
    reverting: bool = typer.Option(False, "--reverting", help="Roll back to deprecated parameters"),
    cli_migration: bool = typer.Option(
        False, "--cli-migration", help="Part of a project wide migration"
    ),
):
    """
    Redeploy the AppSync API with migrated parameters
    """
    try:
        reconciler = DeploymentReconciler(_load_config(project_root))
        reconciler.update_stack_for_api_migration(
            "api",
            resource_name,
            is_reverting=reverting,
            is_cli_migration=cli_migration,
        )
        typer.echo("API migration Complete!")
    except Exception as e:
        logger.exception(f"Error during API migration: {str(e)}")
        typer.echo(f"API migration failed: {str(e)}", err=True)
        sys.exit(1)


@env_app.command("get")
def env_get(
    name: Optional[str] = typer.Option(None, "--name", help="Environment name"),
    as_json: bool = typer.Option(False, "--json", help="Print the environment as JSON"),
    project_root: Optional[str] = typer.Option(None, "--project-root", help="Project directory"),
):
    """
    Show the provider settings of an environment
    """
    try:
        manifest = ProjectManifest.load(_load_config(project_root))
    except Exception as e:
        logger.exception(f"Error loading project: {str(e)}")
        typer.echo(f"Env get failed: {str(e)}", err=True)
        sys.exit(1)

    env_name = name or manifest.get_env_info()["envName"]
    all_envs = manifest.team_provider_info

    if as_json:
        if env_name in all_envs:
            typer.echo(json.dumps(all_envs[env_name], indent=4))
        else:
            typer.echo(
                json.dumps({"error": f"No environment found with name: '{env_name}'"}, indent=4)
            )
        return

    if env_name not in all_envs:
        typer.echo("No environment found with the corresponding name provided", err=True)
        sys.exit(1)

    typer.echo("")
    typer.echo(env_name)
    typer.echo("--------------")
    for provider, settings in all_envs[env_name].items():
        typer.echo(f"Provider: {provider}")
        for attribute, value in settings.items():
            typer.echo(f"{attribute}: {pprint.pformat(value)}")
        typer.echo("--------------")
        typer.echo("")
