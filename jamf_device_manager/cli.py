"""
Typer CLI entrypoint for Jamf Device Manager.
"""

from __future__ import annotations

import json
import signal
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from tabulate import tabulate

from .auth_client import AuthClient
from .auth_coordinator import AuthCoordinator
from .bulk_runner import BulkOperationRunner
from .cache import SearchCache
from .config import Config, ConfigError, load_config
from .credential_store import CredentialStore, PreferencesStore, SecretStore
from .csv_loader import items_from_serials, load_batch
from .dashboard import DashboardManager
from .device_client import DeviceOperationClient
from .errors import JamfDeviceManagerError, ValidationError
from .logging_utils import mask, setup_logging
from .models import BatchRunSummary, DeviceBatchItem, RedeployOperation, SetManagedStateOperation
from .search import InventorySearch, ManagementFilter, SearchField
from .token_store import TokenStore
from .utils import dedupe_preserving_order, parse_line_delimited_file

app = typer.Typer(add_completion=False, help="Redeploy the Jamf framework and manage device state in bulk.")


@dataclass
class CliState:
    logger: Any
    config: Config
    output_json: Optional[Path]
    client_id: Optional[str]
    client_secret: Optional[str]
    debug_api: bool


@dataclass
class Services:
    auth: AuthCoordinator
    client: DeviceOperationClient
    store: CredentialStore


def _write_json(path: Path, data: Dict[str, Any], logger) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
    logger.info("Wrote JSON output to %s", path)


def _credential_store(state: CliState) -> CredentialStore:
    return CredentialStore(
        preferences=PreferencesStore(state.config.preferences_path, logger=state.logger),
        secrets=SecretStore(state.config.keyring_service, logger=state.logger),
        logger=state.logger,
    )


def _build_services(state: CliState) -> Services:
    """
    Wire the auth stack from saved preferences, with config and command line
    overrides layered on top. Overrides are not written back to the store.
    """
    config = state.config
    store = _credential_store(state)
    credentials = store.load()
    if config.server_url:
        credentials.server_url = config.server_url
    if state.client_id:
        credentials.client_id = state.client_id
    if state.client_secret:
        credentials.client_secret = state.client_secret

    auth = AuthCoordinator(
        AuthClient(timeout=config.auth_timeout, verify_ssl=config.verify_ssl, logger=state.logger),
        credentials=credentials,
        token_store=TokenStore(safety_margin=config.safety_margin),
        credential_store=store,
        logger=state.logger,
    )
    client = DeviceOperationClient(
        request_timeout=config.request_timeout,
        command_timeout=config.command_timeout,
        long_timeout=config.auth_timeout,
        verify_ssl=config.verify_ssl,
        debug_api=state.debug_api,
        logger=state.logger,
    )
    return Services(auth=auth, client=client, store=store)


def _require_login(services: Services) -> None:
    if services.auth.ensure_authenticated():
        return
    error = services.auth.last_error
    typer.echo(error.describe() if error else "Authentication failed.", err=True)
    raise typer.Exit(code=2 if isinstance(error, ValidationError) else 3)


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Optional[Path] = typer.Option(None, help="Optional config file to load defaults."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose debug logging."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Reduce log verbosity."),
    output_json: Optional[Path] = typer.Option(None, "--output-json", help="Write command output to JSON file."),
    client_id: Optional[str] = typer.Option(None, "--client-id", envvar="JAMF_CLIENT_ID", help="API client ID (overrides saved settings)."),
    client_secret: Optional[str] = typer.Option(
        None, "--client-secret", envvar="JAMF_CLIENT_SECRET", help="API client secret (overrides the keyring).", show_default=False
    ),
):
    """
    Configure global options and shared context.
    """
    logger = setup_logging(verbose=verbose, quiet=quiet, logger_name="jamf_device_manager.cli")
    try:
        config = load_config(config_file=str(config_file) if config_file else None)
    except ConfigError as exc:
        typer.echo(f"Config error: {exc}", err=True)
        raise typer.Exit(code=2)

    if not config.verify_ssl:
        logger.warning("SSL certificate verification is DISABLED - connection is not secure!")

    ctx.obj = CliState(
        logger=logger,
        config=config,
        output_json=output_json,
        client_id=client_id,
        client_secret=client_secret,
        debug_api=verbose,
    )


# -------- Credentials --------
@app.command("configure")
def configure_cmd(
    ctx: typer.Context,
    url: str = typer.Option(..., "--url", prompt="Jamf Pro URL", help="Jamf Pro server URL."),
    client_id: str = typer.Option(..., "--client-id", prompt="Client ID", help="API client ID."),
    client_secret: str = typer.Option(
        ..., "--client-secret", prompt="Client secret", hide_input=True, help="API client secret."
    ),
    save: bool = typer.Option(True, "--save/--no-save", help="Keep the client secret in the system keyring."),
    verify: bool = typer.Option(True, "--verify/--no-verify", help="Request a token to check the credentials."),
):
    """
    Save the Jamf Pro URL and API client credentials.
    """
    state: CliState = ctx.obj
    store = _credential_store(state)
    auth = AuthCoordinator.from_store(
        AuthClient(timeout=state.config.auth_timeout, verify_ssl=state.config.verify_ssl, logger=state.logger),
        store,
        token_store=TokenStore(safety_margin=state.config.safety_margin),
        logger=state.logger,
    )
    auth.update_credentials(url, client_id, client_secret, persist=save)
    typer.echo(f"Saved settings for {auth.server_url} (client {mask(client_id)})")

    if verify:
        if not auth.authenticate():
            typer.echo(auth.last_error.describe() if auth.last_error else "Authentication failed.", err=True)
            raise typer.Exit(code=3)
        typer.echo("Authentication successful.")
    raise typer.Exit(code=0)


@app.command("login")
def login_cmd(ctx: typer.Context):
    """
    Request an access token with the saved credentials.
    """
    state: CliState = ctx.obj
    services = _build_services(state)
    if not services.auth.authenticate():
        error = services.auth.last_error
        typer.echo(error.describe() if error else "Authentication failed.", err=True)
        raise typer.Exit(code=2 if isinstance(error, ValidationError) else 3)
    remaining = services.auth.token_store.seconds_remaining() or 0
    typer.echo(f"Authenticated to {services.auth.server_url}; token valid for {remaining:.0f}s.")


@app.command("logout")
def logout_cmd(
    ctx: typer.Context,
    forget: bool = typer.Option(False, "--forget", help="Also remove the saved client secret from the keyring."),
):
    """
    Drop the current token and optionally forget the saved secret.
    """
    state: CliState = ctx.obj
    services = _build_services(state)
    services.auth.clear_authentication()
    if forget:
        creds = services.auth.credentials
        services.auth.update_credentials(creds.server_url, creds.client_id, "", persist=False)
        typer.echo("Removed saved client secret.")
    typer.echo("Logged out.")


@app.command("status")
def status_cmd(ctx: typer.Context):
    """
    Show the configured server and credential state.
    """
    state: CliState = ctx.obj
    creds = _build_services(state).auth.credentials
    rows = [
        ["Server URL", creds.server_url or "-"],
        ["Client ID", mask(creds.client_id) if creds.client_id else "-"],
        ["Client secret", "set" if creds.client_secret else "missing"],
        ["Saved in keyring", "yes" if creds.persist else "no"],
        ["Config file", str(state.config.config_path) if state.config.config_path else "-"],
    ]
    typer.echo(tabulate(rows, headers=["Setting", "Value"], tablefmt="github"))
    raise typer.Exit(code=0 if creds.is_complete() else 2)


# -------- Bulk operations --------
def _collect_items(serials: List[str], serials_file: Optional[Path], csv_file: Optional[Path]) -> List[DeviceBatchItem]:
    if csv_file:
        if serials or serials_file:
            raise ValidationError("Use either --csv or --serial/--serials-file, not both.")
        return load_batch(str(csv_file))
    values = list(serials or [])
    if serials_file:
        values.extend(parse_line_delimited_file(str(serials_file)))
    return items_from_serials(dedupe_preserving_order(v.strip() for v in values if v.strip()))


def _print_batch(items: List[DeviceBatchItem], show_pin: bool = False) -> None:
    rows = []
    for item in items:
        row = [
            item.id,
            item.serial_number,
            item.display_name or "",
            item.status.value,
            item.jamf_computer_id if item.jamf_computer_id is not None else "",
            item.error_message or item.detail or "",
        ]
        if show_pin:
            row.append(item.lock_pin or "")
        rows.append(row)
    headers = ["#", "Serial", "Name", "Status", "Computer ID", "Message"]
    if show_pin:
        headers.append("Lock PIN")
    typer.echo(tabulate(rows, headers=headers, tablefmt="github"))


def _batch_exit_code(summary: BatchRunSummary) -> int:
    if summary.error_count == 0 and not summary.cancelled:
        return 0
    if summary.success_count == 0 and summary.error_count > 0:
        return 3
    return 1


def _run_batch(ctx: typer.Context, operation, serials, serials_file, csv_file) -> None:
    state: CliState = ctx.obj
    logger = state.logger
    try:
        items = _collect_items(serials, serials_file, csv_file)
    except JamfDeviceManagerError as exc:
        typer.echo(exc.describe(), err=True)
        raise typer.Exit(code=2)
    if not items:
        typer.echo("No serial numbers given. Use --serial, --serials-file or --csv.", err=True)
        raise typer.Exit(code=2)

    services = _build_services(state)
    _require_login(services)

    runner = BulkOperationRunner(
        services.auth,
        services.client,
        inter_item_delay=state.config.inter_item_delay,
        cancel_event=threading.Event(),
        logger=logger,
    )
    previous = signal.signal(signal.SIGINT, lambda *_: runner.cancel())
    try:
        summary = runner.run(
            items,
            operation,
            on_progress=lambda done, total: logger.debug("Progress %d/%d", done, total),
        )
    finally:
        signal.signal(signal.SIGINT, previous)

    show_pin = isinstance(operation, SetManagedStateOperation) and operation.locks
    _print_batch(items, show_pin=show_pin)
    typer.echo(
        f"\n{summary.success_count} succeeded, {summary.error_count} failed"
        + (f", {len(items) - summary.total_processed} not processed (cancelled)" if summary.cancelled else "")
    )

    if state.output_json:
        payload = {
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "server": services.auth.server_url,
            "operation": operation.describe(),
            "summary": asdict(summary),
            "items": [
                {**asdict(item), "status": item.status.value, "lock_pin": item.lock_pin if show_pin else None}
                for item in items
            ],
        }
        _write_json(state.output_json, payload, logger)
    raise typer.Exit(code=_batch_exit_code(summary))


@app.command("redeploy")
def redeploy_cmd(
    ctx: typer.Context,
    serial: List[str] = typer.Option(None, "--serial", help="Serial number (repeatable).", show_default=False),
    serials_file: Optional[Path] = typer.Option(None, "--serials-file", help="File with one serial number per line."),
    csv_file: Optional[Path] = typer.Option(None, "--csv", help="CSV with SerialNumber, ComputerName, Notes columns."),
):
    """
    Redeploy the Jamf management framework to each device.
    """
    _run_batch(ctx, RedeployOperation(), serial, serials_file, csv_file)


@app.command("set-state")
def set_state_cmd(
    ctx: typer.Context,
    managed: bool = typer.Option(..., "--managed/--unmanaged", help="Target management state."),
    lock: bool = typer.Option(False, "--lock", help="Lock each device with a PIN before unmanaging it."),
    pin: Optional[str] = typer.Option(None, "--pin", help="Six digit lock PIN; random per device when omitted."),
    serial: List[str] = typer.Option(None, "--serial", help="Serial number (repeatable).", show_default=False),
    serials_file: Optional[Path] = typer.Option(None, "--serials-file", help="File with one serial number per line."),
    csv_file: Optional[Path] = typer.Option(None, "--csv", help="CSV with SerialNumber, ComputerName, Notes columns."),
):
    """
    Set devices to managed or unmanaged, optionally locking them first.

    Examples:
        jamf-device-manager set-state --unmanaged --lock --csv retired.csv
    """
    if managed and (lock or pin):
        typer.echo("--lock and --pin only apply with --unmanaged.", err=True)
        raise typer.Exit(code=2)
    try:
        operation = SetManagedStateOperation(target=managed, lock_if_unmanaging=lock, pin=pin)
    except ValidationError as exc:
        typer.echo(exc.describe(), err=True)
        raise typer.Exit(code=2)
    _run_batch(ctx, operation, serial, serials_file, csv_file)


# -------- Inventory --------
@app.command("device")
def device_cmd(ctx: typer.Context, serial: str = typer.Argument(..., help="Device serial number.")):
    """
    Show inventory details for one device.
    """
    state: CliState = ctx.obj
    services = _build_services(state)
    _require_login(services)
    detail, status = services.client.get_computer_details_by_serial(
        services.auth.server_url, services.auth.get_current_token() or "", serial
    )
    if detail is None:
        typer.echo(f"Failed to find device with serial number {serial} (Status: {status or 0})", err=True)
        raise typer.Exit(code=3)

    memory = f"{detail.total_ram_mb // 1024} GB" if detail.total_ram_mb else "Unknown"
    rows = [
        ["Name", detail.name],
        ["Computer ID", detail.id],
        ["Serial", detail.serial_number or "N/A"],
        ["Managed", "Yes" if detail.managed else "No"],
        ["Model", detail.model or "Unknown"],
        ["Operating system", f"{detail.os_name or 'macOS'} {detail.os_version or ''}".strip()],
        ["Processor", detail.processor_type or "Unknown Processor"],
        ["Memory", memory],
        ["User", detail.real_name or detail.username or ""],
        ["Email", detail.email or ""],
        ["Last check-in", detail.last_contact_time or detail.report_date or "N/A"],
        ["Last inventory", detail.last_inventory_update or detail.report_date or "N/A"],
        ["Enrolled", detail.last_enrolled_date or "N/A"],
    ]
    typer.echo(tabulate(rows, tablefmt="github"))
    if state.output_json:
        _write_json(state.output_json, asdict(detail), state.logger)


@app.command("search")
def search_cmd(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Search term."),
    field: List[SearchField] = typer.Option(
        None, "--field", help="Fields for an advanced search (repeatable); omit for a name search.", show_default=False
    ),
    management: ManagementFilter = typer.Option(ManagementFilter.MANAGED, "--filter", help="Management state filter."),
):
    """
    Find computers by name, or by model/serial/user/name with --field.
    """
    state: CliState = ctx.obj
    services = _build_services(state)
    _require_login(services)
    search = InventorySearch(
        services.auth,
        services.client,
        batch_size=state.config.search_batch_size,
        max_workers=state.config.search_concurrency,
        max_results=state.config.search_max_results,
        logger=state.logger,
    )
    try:
        if field:
            results = search.advanced_search(
                query, field, management,
                on_progress=lambda fraction: state.logger.debug("Search progress %.0f%%", fraction * 100),
            )
        else:
            results = search.simple_search(query, management)
    except ValidationError as exc:
        typer.echo(exc.describe(), err=True)
        raise typer.Exit(code=2)
    except JamfDeviceManagerError as exc:
        typer.echo(exc.describe(), err=True)
        raise typer.Exit(code=3)

    rows = [
        [r.id, r.name, r.serial_number, r.user_full_name or r.username, r.model, "Yes" if r.is_managed else "No"]
        for r in results
    ]
    typer.echo(tabulate(rows, headers=["ID", "Name", "Serial", "User", "Model", "Managed"], tablefmt="github"))
    typer.echo(f"\n{len(results)} computers found")
    if state.output_json:
        _write_json(state.output_json, {"query": query, "results": [asdict(r) for r in results]}, state.logger)


@app.command("searches")
def searches_cmd(
    ctx: typer.Context,
    prefix: str = typer.Option("", "--prefix", help="Only show searches whose name starts with this."),
):
    """
    List the Advanced Computer Searches usable for the dashboard.
    """
    state: CliState = ctx.obj
    services = _build_services(state)
    _require_login(services)
    manager = DashboardManager(services.auth, services.client, logger=state.logger)
    try:
        searches = manager.list_searches(name_prefix=prefix)
    except JamfDeviceManagerError as exc:
        typer.echo(exc.describe(), err=True)
        raise typer.Exit(code=3)
    typer.echo(tabulate([[s.id, s.name] for s in searches], headers=["ID", "Name"], tablefmt="github"))


@app.command("dashboard")
def dashboard_cmd(
    ctx: typer.Context,
    search_id: int = typer.Argument(..., help="Advanced Search ID to summarise."),
    refresh: bool = typer.Option(False, "--refresh", help="Ignore cached search results."),
):
    """
    Summarise OS versions, models and check-in recency for an Advanced Search.
    """
    state: CliState = ctx.obj
    services = _build_services(state)
    _require_login(services)
    manager = DashboardManager(
        services.auth,
        services.client,
        cache=SearchCache(
            cache_dir=state.config.cache_dir, ttl=state.config.dashboard_cache_ttl, logger=state.logger
        ),
        logger=state.logger,
    )
    try:
        summary = manager.load(search_id, force_refresh=refresh)
    except JamfDeviceManagerError as exc:
        typer.echo(exc.describe(), err=True)
        raise typer.Exit(code=3)

    typer.echo(f"{summary.search_name}: {summary.search_devices} of {summary.total_devices} devices\n")
    typer.echo(tabulate(summary.os_versions, headers=["OS Version", "Devices"], tablefmt="github"))
    typer.echo("")
    typer.echo(tabulate(summary.models, headers=["Model", "Devices"], tablefmt="github"))
    typer.echo("")
    typer.echo(tabulate(list(summary.check_in.items()), headers=["Last Check-in", "Devices"], tablefmt="github"))
    if state.output_json:
        _write_json(state.output_json, asdict(summary), state.logger)


if __name__ == "__main__":
    app()
