"""Command-line interface for managing end-to-end test file systems out of band.

A run that fails part-way through provisioning leaves its file system in
place. These commands find and remove such leftovers, or create a file
system ahead of time to pass as ``--efs-file-system-id``.
"""

import logging
import sys

import click

from .cloud import FileSystemManager
from .exceptions import FixtureDeletionError, FixtureProvisioningError


@click.group()
@click.version_option()
@click.option("-v", "--verbose", is_flag=True, help="Log AWS operations")
def cli(verbose: bool) -> None:
    """efs-csi-e2e test file system management CLI."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command("create-filesystem")
@click.option("--cluster-name", required=True, help="Cluster whose instances mount the file system")
@click.option("--region", help="AWS region (default: use boto3 defaults)")
@click.option(
    "--endpoint-url",
    help=(
        "AWS endpoint URL "
        "(e.g., http://localhost:4566 for LocalStack, or other AWS-compatible services)"
    ),
)
@click.option(
    "--wait/--no-wait",
    default=True,
    help="Wait for the file system and mount targets to become available",
)
def create_filesystem(
    cluster_name: str,
    region: str | None,
    endpoint_url: str | None,
    wait: bool,
) -> None:
    """Create an EFS file system with mount targets for a cluster."""
    manager = FileSystemManager(region=region, endpoint_url=endpoint_url)

    click.echo(f"Creating EFS file system for cluster {cluster_name}...")
    try:
        file_system_id = manager.create_file_system(cluster_name, wait=wait)
    except FixtureProvisioningError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ Created {file_system_id}")
    click.echo(f"  Run tests with: --efs-file-system-id {file_system_id}")


@cli.command("delete-filesystem")
@click.argument("file_system_id")
@click.option("--region", help="AWS region (default: use boto3 defaults)")
@click.option("--endpoint-url", help="AWS endpoint URL")
@click.option(
    "--wait/--no-wait",
    default=True,
    help="Wait for the file system to be deleted",
)
@click.option("--yes", is_flag=True, help="Skip confirmation prompt")
def delete_filesystem(
    file_system_id: str,
    region: str | None,
    endpoint_url: str | None,
    wait: bool,
    yes: bool,
) -> None:
    """Delete an EFS file system and its mount targets."""
    if not yes:
        click.confirm(f"Delete {file_system_id} and everything stored on it?", abort=True)

    manager = FileSystemManager(region=region, endpoint_url=endpoint_url)
    try:
        manager.delete_file_system(file_system_id, wait=wait)
    except FixtureDeletionError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ Deleted {file_system_id}")


@cli.command("list-filesystems")
@click.option("--cluster-name", help="Only show file systems tagged for this cluster")
@click.option("--region", help="AWS region (default: use boto3 defaults)")
@click.option("--endpoint-url", help="AWS endpoint URL")
def list_filesystems(
    cluster_name: str | None,
    region: str | None,
    endpoint_url: str | None,
) -> None:
    """List file systems created by end-to-end runs."""
    manager = FileSystemManager(region=region, endpoint_url=endpoint_url)
    file_systems = manager.list_file_systems(cluster_name)

    if not file_systems:
        click.echo("No end-to-end test file systems found.")
        return

    click.echo(f"{'ID':<24} {'STATE':<12} {'CLUSTER':<24} NAME")
    for fs in file_systems:
        click.echo(
            f"{fs['file_system_id']:<24} {fs['state']:<12} {fs['cluster'] or '-':<24} {fs['name']}"
        )


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
