"""CLI entry point: depfresh.

Subcommands:
    depfresh latest crates serde tokio          # latest version per package
    depfresh versions package react             # every version, newest first
    depfresh check package react=17.0.2 vue=3.4.0 [--json]
"""

from __future__ import annotations

import asyncio
import json
import sys

import click

from depfresh.config import FreshnessSettings
from depfresh.core.logging import setup_logging
from depfresh.engine import FreshnessEngine
from depfresh.errors import ConfigError, UnknownManifestError
from depfresh.manifests import ManifestKey
from depfresh.models import DependencyTable, PublishEvent

_CLI_SCOPE = "cli"


def _manifest_key(value: str) -> ManifestKey:
    try:
        return ManifestKey.parse(value)
    except UnknownManifestError as exc:
        choices = ", ".join(k.value for k in ManifestKey)
        raise click.BadParameter(f"{exc} (choose from: {choices} or a manifest file name)")


def _settings() -> FreshnessSettings:
    try:
        return FreshnessSettings.from_env()
    except ConfigError as exc:
        raise click.ClickException(str(exc))


def _parse_pins(pins: tuple[str, ...]) -> dict[str, str | None]:
    out: dict[str, str | None] = {}
    for pin in pins:
        name, sep, version = pin.partition("=")
        if not name:
            raise click.BadParameter(f"expected NAME=VERSION, got {pin!r}")
        out[name] = version if sep and version else None
    return out


@click.group()
@click.option("--log-level", default=None, help="Log level (default: $DEPFRESH_LOG_LEVEL or WARNING)")
@click.option("--log-format", type=click.Choice(["console", "json"]), default=None)
def main(log_level: str | None, log_format: str | None) -> None:
    """Resolve latest versions across crates.io, npm, pub.dev, Packagist and the Go proxy."""
    try:
        setup_logging(level=log_level, fmt=log_format)
    except ConfigError as exc:
        raise click.ClickException(str(exc))


@main.command()
@click.argument("ecosystem")
@click.argument("names", nargs=-1, required=True)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def latest(ecosystem: str, names: tuple[str, ...], as_json: bool) -> None:
    """Print the latest published version of each NAME."""
    key = _manifest_key(ecosystem)
    results = asyncio.run(_latest(_settings(), key, names))

    if as_json:
        click.echo(
            json.dumps(
                {r.name: {"latest": r.latest_version, "error": r.error} for r in results},
                indent=2,
            )
        )
        return

    failed = False
    for r in results:
        if r.ok and r.latest_version:
            click.echo(f"{r.name} {r.latest_version}")
        else:
            failed = True
            click.echo(f"{r.name} ? ({r.error or 'no latest version'})", err=True)
    if failed:
        sys.exit(1)


@main.command()
@click.argument("ecosystem")
@click.argument("name")
@click.option("--limit", type=int, default=0, help="Show at most N versions (0 = all)")
def versions(ecosystem: str, name: str, limit: int) -> None:
    """Print every published version of NAME, newest first."""
    key = _manifest_key(ecosystem)
    found = asyncio.run(_versions(_settings(), key, name))
    if found is None:
        click.echo(f"No versions found for {name}.", err=True)
        sys.exit(1)
    shown = found.versions[:limit] if limit > 0 else found.versions
    for version in shown:
        click.echo(version)


@main.command()
@click.argument("ecosystem")
@click.argument("pins", nargs=-1, required=True)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def check(ecosystem: str, pins: tuple[str, ...], as_json: bool) -> None:
    """Classify installed NAME=VERSION pins as outdated or up to date."""
    key = _manifest_key(ecosystem)
    installed = _parse_pins(pins)
    event = asyncio.run(_check(_settings(), key, installed))

    if as_json:
        click.echo(json.dumps(event.to_dict() if event else {}, indent=2))
        return
    _print_classification(event, installed)


# ── async helpers ──────────────────────────────────────────────────────────


async def _latest(settings: FreshnessSettings, key: ManifestKey, names: tuple[str, ...]):
    async with FreshnessEngine(settings, DependencyTable(), on_publish=lambda _e: None) as engine:
        return await asyncio.gather(*(engine.latest_version(key, n) for n in names))


async def _versions(settings: FreshnessSettings, key: ManifestKey, name: str):
    async with FreshnessEngine(settings, DependencyTable(), on_publish=lambda _e: None) as engine:
        return await engine.list_versions(key, name)


async def _check(
    settings: FreshnessSettings, key: ManifestKey, installed: dict[str, str | None]
) -> PublishEvent | None:
    table = DependencyTable()
    table.set_installed(key, installed)
    settled: list[PublishEvent] = []

    def on_publish(event: PublishEvent) -> None:
        if not event.loading:
            settled.append(event)

    async with FreshnessEngine(settings, table, on_publish=on_publish) as engine:
        engine.check_outdated(_CLI_SCOPE, key)
        await engine.wait_until_idle(_CLI_SCOPE, key)
    return settled[-1] if settled else None


def _print_classification(event: PublishEvent | None, installed: dict[str, str | None]) -> None:
    classification = event.classification if event else {}
    if not classification:
        click.echo("No freshness data available.")

    width = max((len(n) for n in installed), default=0)
    outdated = 0
    for name in sorted(installed):
        info = classification.get(name)
        if info is None:
            status = "not installed" if installed[name] is None else "unresolved"
            click.echo(f"  {name:<{width}}  {installed[name] or '-'}  ({status})")
            continue
        if info.up_to_date:
            status = "up to date"
        elif info.constraint_newer:
            status = "newer than registry"
        else:
            status = "outdated"
            outdated += 1
        click.echo(f"  {name:<{width}}  {info.current} -> {info.latest}  ({status})")

    if classification:
        click.echo(f"\n{outdated} outdated of {len(classification)} resolved")


if __name__ == "__main__":
    main()
