"""API controller CLI (apiop).

Offline tooling for manifest authors. Nothing here contacts the backend.

Usage:
    apiop plan api.yaml     # Show the operation a reconcile would choose
    apiop tags api.yaml     # Show the tag set after default-tag injection
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from .config import (
    DEFAULT_RESOURCE_TAGS,
    DEFAULT_SYSTEM_TAG_PREFIX,
    ConfigurationError,
    ControllerConfig,
    parse_tag_templates,
)
from .errors import ValidationError
from .models import ApiResource
from .selector import select_operation
from .spec_loader import SpecLoadError, load_manifest
from .tags import OrderedTags, ensure_tags, expand_default_tags

# Exit code for a manifest the selector rejects
EXIT_VALIDATION_ERROR = 2

# Placeholders so tag expansion works without a real account
OFFLINE_ACCOUNT_ID = "000000000000"
OFFLINE_REGION = "us-east-1"


def _load(manifest: Path) -> ApiResource:
    try:
        return load_manifest(manifest)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(version="0.1.0", prog_name="apiop")
def cli() -> None:
    """API controller tooling.

    \b
    Quick start:
      apiop plan api.yaml
      apiop tags api.yaml
    """
    pass


@cli.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--existing",
    is_flag=True,
    help="Treat the API as already created, even without status.apiID",
)
def plan(manifest: Path, existing: bool) -> None:
    """Print the operation a reconcile would choose for MANIFEST."""
    resource = _load(manifest)
    observed = resource.status if existing or resource.status.api_id else None

    try:
        operation = select_operation(resource, observed)
    except ValidationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_VALIDATION_ERROR)

    click.echo(operation.value)


@cli.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--controller-version",
    envvar="CONTROLLER_VERSION",
    default="dev",
    show_default=True,
    help="Controller version used in default tags",
)
@click.option(
    "--resource-tags",
    envvar="RESOURCE_TAGS",
    default=DEFAULT_RESOURCE_TAGS,
    help="Comma separated key=value default tag templates",
)
@click.option(
    "--system-tag-prefix",
    envvar="SYSTEM_TAG_PREFIX",
    default=DEFAULT_SYSTEM_TAG_PREFIX,
    show_default=True,
    help="Reserved backend tag prefix",
)
def tags(
    manifest: Path, controller_version: str, resource_tags: str, system_tag_prefix: str
) -> None:
    """Print MANIFEST's tags after default-tag injection, in merge order."""
    resource = _load(manifest)

    try:
        config = ControllerConfig(
            account_id=OFFLINE_ACCOUNT_ID,
            region=OFFLINE_REGION,
            controller_version=controller_version,
            resource_tags=parse_tag_templates(resource_tags),
            system_tag_prefix=system_tag_prefix,
        )
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    defaults = expand_default_tags(config, resource.metadata.namespace, resource.metadata.name)
    merged = ensure_tags(OrderedTags.from_mapping(resource.spec.tags), defaults)
    for tag in merged:
        click.echo(f"{tag.key}={tag.value}\t({tag.provenance.value})")


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
