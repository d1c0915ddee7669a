#!/usr/bin/env python3
"""
CLI tool for the PagerDuty extension operator.
Provides a terraform-like plan/apply interface for extension manifests.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List

import click
import yaml
from tabulate import tabulate

from config import ControllerConfig, PagerDutyConfig
from controller import SENSITIVE_VALUE, Controller
from controller import ControllerConfig as ControllerSettings
from manifests import ManifestError, load_manifests
from pagerduty import PagerDutyClient, PagerDutyError
from plugins import ReconcileResult, ResourceAction
from plugins.registry import get_registry, register_builtin_plugins
from state import StateError, StateStore

ACTION_SYMBOLS = {
    ResourceAction.CREATE: "+",
    ResourceAction.UPDATE: "~",
    ResourceAction.REPLACE: "-/+",
    ResourceAction.DELETE: "-",
    ResourceAction.IMPORT: "<=",
    ResourceAction.REFRESH: "<=",
    ResourceAction.NOOP: "",
}


def _client() -> PagerDutyClient:
    try:
        return PagerDutyClient.from_config(PagerDutyConfig.from_env())
    except ValueError as e:
        raise click.ClickException(str(e))


def _controller(ctx: click.Context) -> Controller:
    register_builtin_plugins()
    settings = ControllerConfig.from_env()
    return Controller(
        client=_client(),
        state_store=ctx.obj["state"],
        registry=get_registry(),
        config=ControllerSettings(
            max_concurrent_reconciles=settings.max_concurrent_reconciles,
            prune=ctx.obj["prune"],
        ),
    )


def _load(filename: str):
    try:
        return load_manifests(filename)
    except ManifestError as e:
        raise click.ClickException(str(e))


def _sensitive_attributes(resource_type: str) -> List[str]:
    info = get_registry().get_resource_plugin_info(resource_type)
    return info["sensitive_attributes"] if info else []


def _mask(resource_type: str, attributes: Dict[str, Any]) -> Dict[str, Any]:
    sensitive = _sensitive_attributes(resource_type)
    return {
        key: SENSITIVE_VALUE if key in sensitive and value else value
        for key, value in attributes.items()
    }


def _format_changes(result: ReconcileResult) -> str:
    return "\n".join(
        f"{key}: {change['old']!r} -> {change['new']!r}"
        for key, change in sorted(result.changed_attributes.items())
    )


def _echo_results(results: List[ReconcileResult], show_changes: bool = False) -> None:
    headers = ["Name", "Action", "ID", "Success", "Message"]
    if show_changes:
        headers.insert(3, "Changes")

    rows = []
    for result in results:
        row = [
            result.name,
            f"{ACTION_SYMBOLS[result.action]} {result.action.value}".strip(),
            result.resource_id or "-",
            "✓" if result.success else "✗",
            result.message,
        ]
        if show_changes:
            row.insert(3, _format_changes(result))
        rows.append(row)

    click.echo(tabulate(rows, headers=headers, tablefmt="grid"))


def _check(results: List[ReconcileResult]) -> None:
    failed = [r.name for r in results if not r.success]
    if failed:
        raise click.ClickException(f"Failed: {', '.join(failed)}")


@click.group()
@click.option(
    "--state",
    "state_path",
    envvar="PDX_STATE_PATH",
    default="pdx.state.json",
    show_default=True,
    help="Path to the state file",
)
@click.option(
    "--log-level",
    envvar="LOG_LEVEL",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
)
@click.option("--prune", is_flag=True, help="Destroy tracked resources not declared")
@click.pass_context
def cli(ctx, state_path, log_level, prune):
    """PagerDuty extension CLI - plan and apply extension manifests"""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["state"] = StateStore(state_path)
    ctx.obj["prune"] = prune
    try:
        ctx.obj["state"].load()
    except StateError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
@click.pass_context
def plan(ctx, filename):
    """Show the changes apply would make"""
    specs = _load(filename)
    controller = _controller(ctx)

    results = asyncio.run(controller.plan_all(specs))

    _echo_results(results, show_changes=True)
    _check(results)


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
@click.option("--auto-approve", is_flag=True, help="Skip interactive approval")
@click.pass_context
def apply(ctx, filename, auto_approve):
    """Create, update or replace resources from a YAML/JSON manifest"""
    specs = _load(filename)
    controller = _controller(ctx)

    planned = asyncio.run(controller.plan_all(specs))
    _check(planned)

    if all(r.action == ResourceAction.NOOP for r in planned):
        click.echo("No changes. Resources are up to date.")
        return

    _echo_results(
        [r for r in planned if r.action != ResourceAction.NOOP], show_changes=True
    )
    if not auto_approve:
        click.confirm("Apply these changes?", abort=True)

    results = asyncio.run(controller.apply_all(specs))

    _echo_results(results)
    _check(results)


@cli.command()
@click.argument("name")
@click.confirmation_option(prompt="Are you sure you want to destroy this resource?")
@click.pass_context
def destroy(ctx, name):
    """Delete a tracked resource from PagerDuty"""
    controller = _controller(ctx)

    result = asyncio.run(controller.destroy(name))

    _echo_results([result])
    _check([result])


@cli.command(name="import")
@click.argument("resource_type")
@click.argument("name")
@click.argument("resource_id")
@click.pass_context
def import_(ctx, resource_type, name, resource_id):
    """Track an existing PagerDuty object under NAME"""
    controller = _controller(ctx)

    result = asyncio.run(controller.import_resource(resource_type, name, resource_id))

    _echo_results([result])
    _check([result])


@cli.command()
@click.argument("name")
@click.pass_context
def refresh(ctx, name):
    """Update a tracked resource's state from PagerDuty"""
    controller = _controller(ctx)

    result = asyncio.run(controller.refresh(name))

    _echo_results([result])
    _check([result])


@cli.command()
@click.argument("name")
@click.option(
    "--output", "-o", type=click.Choice(["table", "json", "yaml"]), default="table"
)
@click.option("--show-sensitive", is_flag=True, help="Do not mask secret values")
@click.pass_context
def show(ctx, name, output, show_sensitive):
    """Show the tracked state of a resource"""
    register_builtin_plugins()
    data = ctx.obj["state"].get(name)
    if data is None:
        raise click.ClickException(f"Resource '{name}' is not tracked in state")

    result = data.to_dict()
    if not show_sensitive:
        result["attributes"] = _mask(data.resource_type, data.attributes)

    if output == "json":
        click.echo(json.dumps(result, indent=2, sort_keys=True))
    elif output == "yaml":
        click.echo(yaml.dump(result, default_flow_style=False))
    else:
        click.echo(f"Resource: {data.name}")
        click.echo(f"Type: {data.resource_type}")
        click.echo(f"ID: {data.id}")
        rows = sorted(result["attributes"].items())
        click.echo(tabulate(rows, headers=["Attribute", "Value"], tablefmt="grid"))


@cli.command(name="list")
@click.pass_context
def list_(ctx):
    """List all tracked resources"""
    resources = ctx.obj["state"].all()
    if not resources:
        click.echo("No resources tracked")
        return

    rows = [
        [data.name, data.resource_type, data.id, data.get("html_url", "")]
        for data in resources
    ]
    click.echo(
        tabulate(rows, headers=["Name", "Type", "ID", "URL"], tablefmt="grid")
    )


@cli.command()
@click.argument("schema_id", required=False)
@click.option("--query", "-q", default=None, help="Filter schemas by name")
def schemas(schema_id, query):
    """List extension schemas, or describe the one given by SCHEMA_ID"""
    client = _client()

    try:
        if schema_id:
            found = [asyncio.run(client.extension_schemas.get(schema_id))]
        else:
            found = asyncio.run(client.extension_schemas.list(query=query))
    except PagerDutyError as e:
        raise click.ClickException(str(e))

    if schema_id:
        schema = found[0]
        click.echo(f"Schema: {schema.label or schema.summary} ({schema.id})")
        click.echo(f"Key: {schema.key}")
        click.echo(f"Send types: {', '.join(schema.send_types) or '-'}")
        if schema.description:
            click.echo(schema.description)
        return

    rows = [[s.id, s.label or s.summary, s.key] for s in found]
    click.echo(tabulate(rows, headers=["ID", "Label", "Key"], tablefmt="grid"))


if __name__ == "__main__":
    cli()
