"""
SchemaBlob Command-Line Interface

Manage containers and JSON data blobs on the configured backend.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click

from schemablob import __version__
from schemablob.core.config_manager import ConfigManager
from schemablob.core.logging_config import configure_logging
from schemablob.exceptions import BlobStorageError
from schemablob.storage import BlobStorage


def merge_patch(target: Any, patch: Any) -> Any:
    """Apply an RFC 7386 JSON merge patch and return the result."""
    if not isinstance(patch, dict):
        return patch
    result = dict(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


def _load_json_file(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"{path} is not valid JSON: {e}")


def _run(ctx: click.Context, operation) -> Any:
    """Run ``operation(storage)`` on a fresh BlobStorage, reporting errors."""
    config = ctx.obj["config"]

    async def main():
        async with BlobStorage.from_config(config) as storage:
            return await operation(storage)

    try:
        return asyncio.run(main())
    except BlobStorageError as e:
        click.echo(f"[ERROR] {e.error_code}: {e.message}", err=True)
        sys.exit(1)


def _echo_json(document: Any) -> None:
    click.echo(json.dumps(document, indent=2, sort_keys=True))


@click.group()
@click.version_option(version=__version__, prog_name="schemablob")
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--backend",
    type=click.Choice(["memory", "file", "azure"], case_sensitive=False),
    help="Storage backend (overrides configuration)",
)
@click.option(
    "--path",
    "data_path",
    type=click.Path(file_okay=False, path_type=Path),
    help="Root directory of the file backend",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level",
)
@click.pass_context
def cli(ctx, config_file: Optional[Path], backend: Optional[str], data_path: Optional[Path], log_level: Optional[str]):
    """
    SchemaBlob - schema-validated JSON documents on blob storage
    """
    overrides: Dict[str, Any] = {}
    if backend:
        overrides.setdefault("backend", {})["type"] = backend.lower()
    if data_path:
        overrides.setdefault("backend", {})["path"] = str(data_path)
    if log_level:
        overrides.setdefault("logging", {})["level"] = log_level.upper()

    manager = ConfigManager()
    config = manager.load(
        config_file=str(config_file) if config_file else None,
        cli_overrides=overrides or None,
    )
    configure_logging(config.logging)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command()
def version():
    """Show SchemaBlob version."""
    click.echo(f"SchemaBlob version {__version__}")


# ========== Container Commands ==========

@cli.group()
def container():
    """Create, list and delete containers."""
    pass


@container.command("create")
@click.argument("name")
@click.option(
    "--schema",
    "schema_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON schema every data blob in the container must satisfy",
)
@click.pass_context
def container_create(ctx, name: str, schema_file: Optional[Path]):
    """
    Create a container.

    Examples:
        schemablob container create settings --schema settings.schema.json
    """
    schema = _load_json_file(schema_file) if schema_file else None

    async def operation(storage: BlobStorage):
        return await storage.create_container(name, schema=schema)

    created = _run(ctx, operation)
    click.echo(f"[OK] Created container '{created.name}'")
    if created.schema_ref:
        click.echo(f"Schema: {created.schema_ref}")


@container.command("delete")
@click.argument("name")
@click.pass_context
def container_delete(ctx, name: str):
    """Delete a container and all its blobs."""

    async def operation(storage: BlobStorage):
        await storage.delete_container(name)

    _run(ctx, operation)
    click.echo(f"[OK] Deleted container '{name}'")


@container.command("list")
@click.option("--prefix", default=None, help="Only containers whose name starts with PREFIX")
@click.pass_context
def container_list(ctx, prefix: Optional[str]):
    """List containers."""

    async def operation(storage: BlobStorage):
        return await storage.list_containers(prefix=prefix)

    for info in _run(ctx, operation):
        suffix = f"  {info.schema_ref}" if info.schema_ref else ""
        click.echo(f"{info.name}{suffix}")


# ========== Blob Commands ==========

@cli.group()
def blob():
    """Create, read, update and delete data blobs."""
    pass


@blob.command("put")
@click.argument("container_name")
@click.argument("name")
@click.argument("document_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def blob_put(ctx, container_name: str, name: str, document_file: Path):
    """Create a data blob from a JSON file."""
    document = _load_json_file(document_file)

    async def operation(storage: BlobStorage):
        target = await storage.get_container(container_name)
        return await target.create_data_blob(name, document)

    created = _run(ctx, operation)
    click.echo(f"[OK] Created blob '{created.name}' (etag {created.etag})")


@blob.command("get")
@click.argument("container_name")
@click.argument("name")
@click.pass_context
def blob_get(ctx, container_name: str, name: str):
    """Print the JSON document stored in a data blob."""

    async def operation(storage: BlobStorage):
        target = await storage.get_container(container_name)
        data_blob = await target.get_data_blob(name, cache_content=True)
        return data_blob.content

    _echo_json(_run(ctx, operation))


@blob.command("update")
@click.argument("container_name")
@click.argument("name")
@click.option("--merge", "merge", required=True, help="JSON merge patch (RFC 7386) to apply")
@click.option(
    "--max-attempts", type=click.IntRange(1, 100), default=None, help="Retry budget under write contention"
)
@click.pass_context
def blob_update(ctx, container_name: str, name: str, merge: str, max_attempts: Optional[int]):
    """
    Update a data blob with a JSON merge patch.

    Examples:
        schemablob blob update settings prod --merge '{"value": 40}'
    """
    try:
        patch = json.loads(merge)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"--merge is not valid JSON: {e}")

    async def operation(storage: BlobStorage):
        target = await storage.get_container(container_name)
        data_blob = await target.get_data_blob(name, cache_content=True)
        return await data_blob.update(
            lambda document: merge_patch(document, patch),
            max_attempts=max_attempts,
        )

    _echo_json(_run(ctx, operation))


@blob.command("list")
@click.argument("container_name")
@click.option("--prefix", default=None, help="Only blobs whose name starts with PREFIX")
@click.pass_context
def blob_list(ctx, container_name: str, prefix: Optional[str]):
    """List blobs in a container."""

    async def operation(storage: BlobStorage):
        target = await storage.get_container(container_name)
        return await target.list_blobs(prefix=prefix).to_list()

    for item in _run(ctx, operation):
        click.echo(f"{item.name}  {item.etag}")


@blob.command("delete")
@click.argument("container_name")
@click.argument("name")
@click.pass_context
def blob_delete(ctx, container_name: str, name: str):
    """Delete a blob."""

    async def operation(storage: BlobStorage):
        target = await storage.get_container(container_name)
        handle = await target.get_blob(name)
        await handle.delete()

    _run(ctx, operation)
    click.echo(f"[OK] Deleted blob '{name}'")


def main():
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
