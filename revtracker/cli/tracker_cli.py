#!/usr/bin/env python3
"""
Revtracker CLI

Runs the repository tracker for projects without the worker, activates due
build variants and shows stored versions.
"""

import asyncio
import logging
import sys
from typing import List, Optional

import click

from ..config.config_loader import load_project_refs
from ..config.global_config_loader import load_global_config
from ..core.errors import TrackerError
from ..core.models import ProjectRef
from ..notifications import BuildBreakSubscriptionHook
from ..store import get_store
from ..store.base import BaseStore
from ..tracker.activation import ProjectActivator
from ..tracker.runner import TrackerRunner
from ..worker.worker_cli import worker_cli


class TrackerCLI:
    """Command-line interface for running the tracker by hand"""

    def __init__(self, global_config, projects_file: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self.global_config = global_config
        self.projects_file = projects_file or global_config.projects.projects_path
        self.store: Optional[BaseStore] = None

    async def _ensure_store(self) -> BaseStore:
        """Ensure the document store is connected"""
        if self.store is None:
            self.store = get_store(self.global_config.store.type, {
                'url': self.global_config.redis.url,
                'key_prefix': self.global_config.store.key_prefix,
            })
            await self.store.connect()
            self.logger.info(f"Connected to {self.global_config.store.type} store")
        return self.store

    async def _cleanup_store(self):
        if self.store:
            await self.store.disconnect()
            self.store = None

    def _load_projects(self) -> List[ProjectRef]:
        return load_project_refs(self.projects_file)

    def _find_project(self, project_id: str) -> ProjectRef:
        for project_ref in self._load_projects():
            if project_ref.identifier == project_id:
                return project_ref
        raise click.ClickException(f"Project '{project_id}' not found in {self.projects_file}")

    async def _runner(self) -> TrackerRunner:
        store = await self._ensure_store()
        return TrackerRunner(self.global_config, store, notification_hook=BuildBreakSubscriptionHook(store))

    async def track(self, project_id: str) -> bool:
        project_ref = self._find_project(project_id)
        runner = await self._runner()
        try:
            await runner.run_project(project_ref)
        except TrackerError as e:
            click.echo(f"✗ Tracking {project_id} failed ({e.kind.value}): {e}", err=True)
            return False

        latest = await self.store.find_latest_version(project_id)
        if latest:
            click.echo(f"✓ Tracked {project_id}, latest version {latest.id} (order {latest.order_number})")
        else:
            click.echo(f"✓ Tracked {project_id}, no versions stored")
        return True

    async def track_all(self) -> bool:
        runner = await self._runner()
        results = await runner.run_all(self._load_projects())
        if not results:
            click.echo("No enabled projects found")
            return True

        for project_id, outcome in results.items():
            marker = "✓" if outcome == "success" else "✗"
            click.echo(f"{marker} {project_id}: {outcome}")
        return all(outcome == "success" for outcome in results.values())

    async def activate(self, project_id: str) -> bool:
        self._find_project(project_id)
        store = await self._ensure_store()
        activator = ProjectActivator(store, lookback=self.global_config.tracker.activation_lookback)
        build_ids = await activator.activate(project_id)
        if not build_ids:
            click.echo(f"No builds due for activation in {project_id}")
        for build_id in build_ids:
            click.echo(f"Activated build {build_id}")
        return True

    async def versions(self, project_id: str, limit: int) -> bool:
        store = await self._ensure_store()
        versions = await store.list_versions(project_id, limit=limit)
        if not versions:
            click.echo(f"No versions stored for {project_id}")
            return True

        click.echo(f"{len(versions)} version(s) for {project_id}:")
        click.echo("-" * 80)
        for version in versions:
            flags = []
            if version.is_stub:
                flags.append("stub")
            if version.ignored:
                flags.append("ignored")
            suffix = f" [{', '.join(flags)}]" if flags else ""
            click.echo(f"{version.order_number:>6}  {version.revision[:12]}  {version.author}{suffix}")
            for status in version.build_variants:
                state = "activated" if status.activated else f"activates at {status.activate_at}"
                click.echo(f"          {status.build_variant}: {state}")
            for error in version.errors:
                click.echo(f"          error: {error}")
            for warning in version.warnings:
                click.echo(f"          warning: {warning}")
        return True


def _run(ctx, coro_factory):
    cli_instance: TrackerCLI = ctx.obj['cli']

    async def run():
        try:
            return await coro_factory(cli_instance)
        finally:
            await cli_instance._cleanup_store()

    if not asyncio.run(run()):
        sys.exit(1)


@click.group()
@click.option('--global-config', default=None, help='Path to global config YAML')
@click.option('--projects-file', default=None, help='Path to projects YAML (overrides global config)')
@click.option('--log-level', default='INFO',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
              help='Set the logging level')
@click.pass_context
def cli(ctx, global_config, projects_file, log_level):
    """Revtracker CLI - Track repositories and expand versions into builds"""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    if global_config:
        global_cfg = load_global_config(global_config)
    else:
        global_cfg = load_global_config()

    ctx.ensure_object(dict)
    ctx.obj['global_config'] = global_cfg
    ctx.obj['cli'] = TrackerCLI(global_cfg, projects_file)


@cli.command()
@click.option('--project', required=True, help='Identifier of the project to track')
@click.pass_context
def track(ctx, project):
    """Poll one project and store versions for its new revisions"""
    _run(ctx, lambda c: c.track(project))


@cli.command('track-all')
@click.pass_context
def track_all(ctx):
    """Poll every enabled project"""
    _run(ctx, lambda c: c.track_all())


@cli.command()
@click.option('--project', required=True, help='Identifier of the project')
@click.pass_context
def activate(ctx, project):
    """Activate build variants whose activation time has passed"""
    _run(ctx, lambda c: c.activate(project))


@cli.command()
@click.option('--project', required=True, help='Identifier of the project')
@click.option('--limit', default=20, show_default=True, help='Number of versions to show')
@click.pass_context
def versions(ctx, project, limit):
    """Show the most recent versions of a project"""
    _run(ctx, lambda c: c.versions(project, limit))


cli.add_command(worker_cli, name='worker')


if __name__ == "__main__":
    cli()
