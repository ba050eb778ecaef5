"""ogdat CLI - check OGD Austria metadata and watch a data portal.

The CLI is a thin wrapper around the Python API (see ogdat_cli.validation
and ogdat_cli.batch). All business logic lives in the library; the CLI
handles user interaction.
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any, NoReturn
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import click
import requests

from ogdat_cli.config import (
    get_int_setting,
    get_setting,
    list_settings,
    set_setting,
    unset_setting,
)
from ogdat_cli.errors import ConfigInvalidValueError, OgdatError, UnknownFieldError
from ogdat_cli.json_output import (
    ErrorDetail,
    OutputEnvelope,
    error_detail,
    error_envelope,
    success_envelope,
)
from ogdat_cli.output import check_message, detail, error, info, report_summary, success, warn
from ogdat_cli.probe import UrlProbe
from ogdat_cli.spec.registry import FieldDescriptor, default_registry, resolve_version
from ogdat_cli.validation import CheckEngine
from ogdat_cli.validation import check as check_document

if TYPE_CHECKING:
    from ogdat_cli.batch import BatchContext


def should_output_json(ctx: click.Context, json_flag: bool = False) -> bool:
    """Determine if JSON output should be used.

    Checks both the global --format option and per-command --json flags.

    Args:
        ctx: Click context containing the format preference.
        json_flag: Per-command --json flag value.

    Returns:
        True if JSON output should be used, False for text output.
    """
    obj = ctx.find_root().obj or {}
    global_format = obj.get("format", "text")
    return global_format == "json" or json_flag


def output_json_envelope(envelope: OutputEnvelope) -> None:
    """Output a JSON envelope to stdout."""
    click.echo(envelope.to_json())


def _fail(command: str, err: BaseException, use_json: bool) -> NoReturn:
    """Report an error as text or JSON envelope and exit with code 1."""
    if use_json:
        output_json_envelope(error_envelope(command, [error_detail(err)]))
    else:
        error(str(err.message) if isinstance(err, OgdatError) else str(err))
    raise SystemExit(1) from err


@click.group()
@click.version_option(package_name="ogdat-cli")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "text"]),
    default="text",
    help="Output format (json for machine parsing, text for humans).",
)
@click.option("--verbose", "-v", is_flag=True, help="Log library activity to stderr.")
@click.pass_context
def cli(ctx: click.Context, output_format: str, verbose: bool) -> None:
    """ogdat - Check OGD Austria metadata documents and watch data portals."""
    ctx.ensure_object(dict)
    ctx.obj["format"] = output_format
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s: %(message)s",
        )


# ─────────────────────────────────────────────────────────────────────────────
# check
# ─────────────────────────────────────────────────────────────────────────────


def _read_source(source: str, timeout: float) -> bytes:
    """Read a document from a file, stdin ("-") or an http(s) URL."""
    if source == "-":
        return click.get_binary_stream("stdin").read()
    if source.startswith(("http://", "https://")):
        response = requests.get(source, timeout=timeout)
        response.raise_for_status()
        return response.content
    return Path(source).read_bytes()


@cli.command()
@click.argument("source")
@click.option(
    "--spec-version",
    "spec_version",
    help="Version to check against, e.g. 2.2 (default: from schema_name).",
)
@click.option("--follow", is_flag=True, help="Probe http(s) links over the network.")
@click.option(
    "--output",
    "output_file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write the report as JSON to this file.",
)
@click.option("--json", "json_output", is_flag=True, help="Output results as JSON")
@click.pass_context
def check(
    ctx: click.Context,
    source: str,
    spec_version: str | None,
    follow: bool,
    output_file: Path | None,
    json_output: bool,
) -> None:
    """Check a metadata document.

    SOURCE is a JSON file, "-" for stdin, or an http(s) URL.

    Exits with code 1 if any ERROR-level message was emitted.

    Examples:

        ogdat check metadata.json

        ogdat check --spec-version 2.2 --follow https://example.org/dataset.json
    """
    use_json = should_output_json(ctx, json_output)
    config_dir = Path.cwd()

    try:
        timeout = get_int_setting("timeout", config_dir=config_dir)
        data = _read_source(source, timeout)
        registry = default_registry()
        engine = CheckEngine(registry, probe=UrlProbe(timeout=timeout))
        report = check_document(data, version=spec_version, follow_links=follow, engine=engine)
    except (OgdatError, OSError, requests.RequestException) as err:
        _fail("check", err, use_json)

    payload = {"source": source, **report.to_dict()}
    if output_file is not None:
        output_file.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )

    if use_json:
        if report.passed:
            output_json_envelope(success_envelope("check", payload))
        else:
            errors = [
                ErrorDetail(
                    type="CheckFailed",
                    message=f"{len(report.errors)} error message(s) for {source}",
                )
            ]
            output_json_envelope(error_envelope("check", errors, data=payload))
    else:
        spec = registry.lookup(report.version)
        for message in report.messages:
            descriptor = spec.descriptor_by_id(message.field_id) if spec else None
            check_message(message, descriptor.label if descriptor else None)
        report_summary(report, source)
        if output_file is not None:
            detail(f"Report written to {output_file}")

    if not report.passed:
        raise SystemExit(1)


# ─────────────────────────────────────────────────────────────────────────────
# spec
# ─────────────────────────────────────────────────────────────────────────────


@cli.group()
@click.pass_context
def spec(ctx: click.Context) -> None:
    """Inspect the bundled specification versions."""
    ctx.ensure_object(dict)


@spec.command("list")
@click.option("--json", "json_output", is_flag=True, help="Output results as JSON")
@click.pass_context
def spec_list(ctx: click.Context, json_output: bool) -> None:
    """List the supported specification versions."""
    use_json = should_output_json(ctx, json_output)
    registry = default_registry()
    versions = []
    for version in registry.versions():
        table = registry.lookup(version)
        assert table is not None
        versions.append(
            {"version": version, "fields": len(table), "required": len(table.required)}
        )

    if use_json:
        output_json_envelope(success_envelope("spec list", {"versions": versions}))
        return
    for entry in versions:
        info(f"{entry['version']}: {entry['fields']} fields, {entry['required']} required")


@spec.command("show")
@click.argument("version")
@click.argument("field", required=False)
@click.option("--json", "json_output", is_flag=True, help="Output results as JSON")
@click.pass_context
def spec_show(ctx: click.Context, version: str, field: str | None, json_output: bool) -> None:
    """Show the field table of one version (e.g. 2.2).

    FIELD narrows the output to one field, given by ID or short name
    (e.g. 8 or title).
    """
    use_json = should_output_json(ctx, json_output)
    try:
        canonical = resolve_version(version)
    except OgdatError as err:
        _fail("spec show", err, use_json)

    table = default_registry().lookup(canonical)
    assert table is not None
    if field is not None:
        if field.isdigit():
            descriptor = table.descriptor_by_id(int(field))
        else:
            descriptor = table.descriptor_by_short_name(field)
        if descriptor is None:
            _fail("spec show", UnknownFieldError(canonical, field), use_json)
        _show_field(canonical, descriptor, use_json)
        return

    if use_json:
        output_json_envelope(
            success_envelope(
                "spec show",
                {"version": canonical, "fields": [d.to_dict() for d in table]},
            )
        )
        return

    info(canonical)
    for descriptor in table:
        marker = "*" if descriptor.is_required else " "
        detail(
            f"{marker} {descriptor.id:3d} {descriptor.short_name:<26} "
            f"{descriptor.cardinality:<2} {descriptor.label}"
        )


def _show_field(version: str, descriptor: FieldDescriptor, use_json: bool) -> None:
    if use_json:
        output_json_envelope(
            success_envelope("spec show", {"version": version, "field": descriptor.to_dict()})
        )
        return
    info(f"{descriptor.id} {descriptor.label} ({version})")
    detail(f"short name:  {descriptor.short_name}")
    detail(f"CKAN field:  {descriptor.ckan_field}")
    detail(f"cardinality: {descriptor.cardinality}")
    detail(f"occurrence:  {descriptor.occurrence.value}")
    if descriptor.definition_de:
        detail(f"definition:  {descriptor.definition_de}")


# ─────────────────────────────────────────────────────────────────────────────
# watch
# ─────────────────────────────────────────────────────────────────────────────


def _batch_context(config_dir: Path) -> BatchContext:
    from ogdat_cli.batch import BatchContext
    from ogdat_cli.portal import Portal
    from ogdat_cli.store import TrackingStore

    timeout = get_int_setting("timeout", config_dir=config_dir)
    probe = UrlProbe(timeout=timeout)
    return BatchContext(
        portal=Portal(str(get_setting("portal_url", config_dir=config_dir))),
        store=TrackingStore(Path(str(get_setting("store_path", config_dir=config_dir)))),
        engine=CheckEngine(default_registry(), probe=probe),
        probe=probe,
        workers=get_int_setting("workers", config_dir=config_dir),
        heartbeat_interval=60.0 * get_int_setting("heartbeat_interval", config_dir=config_dir),
    )


@cli.group()
@click.pass_context
def watch(ctx: click.Context) -> None:
    """Check a CKAN portal and record the results."""
    ctx.ensure_object(dict)


@watch.command("run")
@click.option("--json", "json_output", is_flag=True, help="Output results as JSON")
@click.pass_context
def watch_run(ctx: click.Context, json_output: bool) -> None:
    """Check all datasets changed since the last run, once."""
    from ogdat_cli.batch import check_data

    use_json = should_output_json(ctx, json_output)
    try:
        count = check_data(_batch_context(Path.cwd()))
    except OgdatError as err:
        _fail("watch run", err, use_json)

    if use_json:
        output_json_envelope(success_envelope("watch run", {"datasets": count}))
    elif count:
        success(f"Checked {count} dataset(s)")
    else:
        info("No changed datasets")


@watch.command("urls")
@click.option("--json", "json_output", is_flag=True, help="Output results as JSON")
@click.pass_context
def watch_urls(ctx: click.Context, json_output: bool) -> None:
    """Re-probe the links recorded by the latest checks, once."""
    from ogdat_cli.batch import check_urls

    use_json = should_output_json(ctx, json_output)
    try:
        count = check_urls(_batch_context(Path.cwd()))
    except OgdatError as err:
        _fail("watch urls", err, use_json)

    if use_json:
        output_json_envelope(success_envelope("watch urls", {"datasets": count}))
    elif count:
        success(f"Probed links of {count} dataset(s)")
    else:
        info("No recorded links")


@watch.command("serve")
@click.option(
    "--idle",
    type=click.IntRange(min=1),
    help="Stop when the next job is more than this many minutes ahead.",
)
@click.pass_context
def watch_serve(ctx: click.Context, idle: int | None) -> None:
    """Run the watcher: data check daily at 23:00, URL check Sundays at 21:00."""
    from ogdat_cli.batch import serve

    use_json = should_output_json(ctx)
    config_dir = Path.cwd()
    try:
        zone_name = str(get_setting("timezone", config_dir=config_dir))
        try:
            zone = ZoneInfo(zone_name)
        except (ZoneInfoNotFoundError, ValueError) as err:
            raise ConfigInvalidValueError("timezone", zone_name, "IANA time zone name") from err
        batch_ctx = _batch_context(config_dir)
        if not use_json:
            info(f"Watching {batch_ctx.portal.base_url} ({zone_name})")
        serve(batch_ctx, zone, timedelta(minutes=idle) if idle else None)
    except OgdatError as err:
        _fail("watch serve", err, use_json)

    if use_json:
        output_json_envelope(success_envelope("watch serve", {"stopped": "idle"}))
    else:
        success("Watcher stopped: nothing to do within the idle window")


@watch.command("reset")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def watch_reset(ctx: click.Context, yes: bool) -> None:
    """Delete all recorded datasets and check results."""
    from ogdat_cli.store import TrackingStore

    use_json = should_output_json(ctx)
    store_path = Path(str(get_setting("store_path", config_dir=Path.cwd())))
    if not yes and not click.confirm(f"All data recorded in {store_path} will be deleted. Proceed?"):
        warn("Aborted, nothing was deleted")
        raise SystemExit(1)

    try:
        TrackingStore(store_path).reset()
    except OgdatError as err:
        _fail("watch reset", err, use_json)

    if use_json:
        output_json_envelope(success_envelope("watch reset", {"store_path": str(store_path)}))
    else:
        success(f"Reset {store_path}")


# ─────────────────────────────────────────────────────────────────────────────
# config
# ─────────────────────────────────────────────────────────────────────────────


@cli.group()
@click.pass_context
def config(ctx: click.Context) -> None:
    """Manage settings in ogdat.yaml."""
    ctx.ensure_object(dict)


@config.command("get")
@click.argument("key")
@click.pass_context
def config_get(ctx: click.Context, key: str) -> None:
    """Show the resolved value of a setting."""
    use_json = should_output_json(ctx)
    try:
        value = get_setting(key, config_dir=Path.cwd())
    except OgdatError as err:
        _fail("config get", err, use_json)

    if use_json:
        output_json_envelope(success_envelope("config get", {"key": key, "value": value}))
    elif value is None:
        info(f"{key} is not set")
    else:
        info(f"{key} = {value}")


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Set a value in ogdat.yaml."""
    use_json = should_output_json(ctx)
    # Integers stay integers in the YAML file
    stored: Any = int(value) if value.isdigit() else value
    try:
        set_setting(Path.cwd(), key, stored)
    except OgdatError as err:
        _fail("config set", err, use_json)

    if use_json:
        output_json_envelope(success_envelope("config set", {"key": key, "value": stored}))
    else:
        success(f"Set {key} = {stored}")


@config.command("unset")
@click.argument("key")
@click.pass_context
def config_unset(ctx: click.Context, key: str) -> None:
    """Remove a value from ogdat.yaml."""
    use_json = should_output_json(ctx)
    try:
        removed = unset_setting(Path.cwd(), key)
    except OgdatError as err:
        _fail("config unset", err, use_json)

    if use_json:
        output_json_envelope(success_envelope("config unset", {"key": key, "removed": removed}))
    elif removed:
        success(f"Removed {key}")
    else:
        info(f"{key} was not set")


@config.command("list")
@click.pass_context
def config_list(ctx: click.Context) -> None:
    """List all settings and where their values come from."""
    use_json = should_output_json(ctx)
    try:
        settings = list_settings(Path.cwd())
    except OgdatError as err:
        _fail("config list", err, use_json)

    if use_json:
        output_json_envelope(success_envelope("config list", {"settings": settings}))
        return
    for key, entry in settings.items():
        info(f"{key} = {entry['value']}  ({entry['source']})")
