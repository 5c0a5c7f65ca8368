"""Command line interface for pyxpconnect."""
from __future__ import annotations

import contextlib
import json
import time
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .catalog import CATALOG, COMMANDS, create_dataref
from .configuration import (
    ConfigurationError,
    ConnectorConfig,
    DataRefSubscription,
    load_configuration,
)
from .connector import ConnectorError, XPlaneConnector
from .datagram import DatagramOverflowError
from .datarefs import DataRefElement, StringDataRefElement
from .logging_config import configure_logging
from .simulator import SimulatorStub

console = Console()

_target_options = [
    click.option("--ip", type=str, help="Simulator IP address (default 127.0.0.1)."),
    click.option("--port", type=int, help="Simulator UDP port (default 49000)."),
    click.option(
        "--config-file",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        help="Connector configuration JSON or YAML file.",
    ),
]


def target_options(func):
    for option in reversed(_target_options):
        func = option(func)
    return func


@click.group()
@click.option("--verbose", is_flag=True, help="Enable verbose logging output.")
@click.option(
    "--trace-requests",
    is_flag=True,
    help="Also log every subscription request sent on each refresh tick.",
)
def cli(verbose: bool, trace_requests: bool) -> None:
    """Talk to a flight simulator over its UDP dataref protocol."""

    configure_logging(verbose=verbose, trace_requests=trace_requests)


def _resolve_config(ip: Optional[str], port: Optional[int], config_file: Optional[Path]) -> ConnectorConfig:
    try:
        config = load_configuration(config_file) if config_file else ConnectorConfig()
        config.apply_environment()
    except ConfigurationError as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc
    if ip:
        config.ip = ip
    if port is not None:
        config.port = port
    return config


@contextlib.contextmanager
def _running_connector(config: ConnectorConfig) -> Iterator[XPlaneConnector]:
    connector = XPlaneConnector(config)
    try:
        with connector.lifecycle():
            yield connector
    except (ConnectorError, DatagramOverflowError) as exc:
        raise click.ClickException(str(exc)) from exc
    except OSError as exc:
        raise click.ClickException(f"Socket error: {exc}") from exc


def _parse_string_option(text: str) -> DataRefSubscription:
    path, _, length = text.rpartition(":")
    if not path or not length:
        raise click.BadParameter(f"'{text}' must look like PATH:LENGTH", param_hint="--string")
    try:
        return DataRefSubscription.from_dict({"path": path, "string_length": length})
    except ConfigurationError as exc:
        raise click.BadParameter(str(exc), param_hint="--string") from exc


@cli.command()
@target_options
@click.option(
    "--dataref",
    "datarefs",
    multiple=True,
    help="Dataref to monitor, optionally as PATH@FREQUENCY. Repeat for more.",
)
@click.option(
    "--string",
    "strings",
    multiple=True,
    help="String dataref to monitor as PATH:LENGTH. Repeat for more.",
)
@click.option(
    "--duration",
    type=float,
    help="Seconds to run before exiting. Runs until interrupted when omitted.",
)
def monitor(
    ip: Optional[str],
    port: Optional[int],
    config_file: Optional[Path],
    datarefs: Tuple[str, ...],
    strings: Tuple[str, ...],
    duration: Optional[float],
) -> None:
    """Subscribe to datarefs and print value changes."""

    if duration is not None and duration < 0:
        raise click.BadParameter("duration must be zero or positive", param_hint="duration")
    config = _resolve_config(ip, port, config_file)
    subscriptions = list(config.datarefs)
    try:
        subscriptions.extend(DataRefSubscription.parse(item) for item in datarefs)
    except ConfigurationError as exc:
        raise click.BadParameter(str(exc), param_hint="--dataref") from exc
    subscriptions.extend(_parse_string_option(item) for item in strings)
    if not subscriptions:
        raise click.UsageError("Nothing to monitor; pass --dataref, --string or a config file.")

    elements: List[Union[DataRefElement, StringDataRefElement]] = []

    def _on_value(element: DataRefElement, value: float) -> None:
        units = f" {element.units}" if element.units else ""
        console.print(f"[cyan]{element.dataref}[/cyan] = {value:g}{units}")

    def _on_text(element: StringDataRefElement, text: str) -> None:
        if element.is_complete:
            console.print(f"[cyan]{element.dataref}[/cyan] = {text!r}")

    with _running_connector(config) as connector:
        for subscription in subscriptions:
            element = _build_element(subscription)
            if isinstance(element, StringDataRefElement):
                connector.subscribe_string(element, subscription.frequency, _on_text)
            else:
                connector.subscribe(element, subscription.frequency, _on_value)
            elements.append(element)
        console.print(
            f"[green]Monitoring {len(elements)} datarefs from {config.ip}:{config.port}. "
            "Press CTRL+C to stop.[/green]"
        )
        stop_at = time.monotonic() + duration if duration is not None else None
        try:
            while stop_at is None or time.monotonic() < stop_at:
                time.sleep(0.1)
        except KeyboardInterrupt:
            console.print("\nStopping monitor...")
    _render_values(elements)


def _build_element(subscription: DataRefSubscription) -> Union[DataRefElement, StringDataRefElement]:
    if subscription.is_string:
        return StringDataRefElement(
            dataref=subscription.path,
            length=int(subscription.string_length or 1),
            frequency=subscription.frequency,
            description=subscription.description,
        )
    element = create_dataref(subscription.path)
    if isinstance(element, StringDataRefElement):
        return element
    if subscription.description:
        element.description = subscription.description
    return element


def _render_values(elements: List[Union[DataRefElement, StringDataRefElement]]) -> None:
    table = Table(title="Last Known Values")
    table.add_column("Dataref")
    table.add_column("Value")
    table.add_column("Units")
    for element in elements:
        if isinstance(element, StringDataRefElement):
            table.add_row(element.dataref, repr(element.value), "string")
        else:
            value = "—" if element.value is None else f"{element.value:g}"
            table.add_row(element.dataref, value, element.units)
    console.print(table)


@cli.command("set")
@target_options
@click.argument("dataref")
@click.argument("value")
@click.option("--string", "as_string", is_flag=True, help="Send VALUE as a string instead of a float.")
def set_value(
    ip: Optional[str],
    port: Optional[int],
    config_file: Optional[Path],
    dataref: str,
    value: str,
    as_string: bool,
) -> None:
    """Write VALUE to DATAREF."""

    payload: Union[float, str]
    if as_string:
        payload = value
    else:
        try:
            payload = float(value)
        except ValueError as exc:
            raise click.BadParameter(
                f"'{value}' is not a number; pass --string to send text", param_hint="value"
            ) from exc
    config = _resolve_config(ip, port, config_file)
    with _running_connector(config) as connector:
        connector.set_dataref_value(dataref, payload)
    console.print(f"Set {dataref} to {payload!r}")


@cli.command()
@target_options
@click.argument("name")
def command(ip: Optional[str], port: Optional[int], config_file: Optional[Path], name: str) -> None:
    """Send the console command NAME."""

    config = _resolve_config(ip, port, config_file)
    with _running_connector(config) as connector:
        connector.send_command(COMMANDS.get(name, name))
    console.print(f"Sent command {name}")


@cli.command("quit")
@target_options
@click.confirmation_option(prompt="Really quit the simulator?")
def quit_simulator(ip: Optional[str], port: Optional[int], config_file: Optional[Path]) -> None:
    """Ask the simulator to quit."""

    config = _resolve_config(ip, port, config_file)
    with _running_connector(config) as connector:
        connector.quit()
    console.print("Quit request sent")


@cli.command()
@target_options
@click.argument("system")
def fail(ip: Optional[str], port: Optional[int], config_file: Optional[Path], system: str) -> None:
    """Fail the simulator system SYSTEM."""

    config = _resolve_config(ip, port, config_file)
    with _running_connector(config) as connector:
        connector.fail(system)
    console.print(f"[yellow]Failed system {system}[/yellow]")


@cli.command()
@target_options
@click.argument("system")
def recover(ip: Optional[str], port: Optional[int], config_file: Optional[Path], system: str) -> None:
    """Recover the simulator system SYSTEM."""

    config = _resolve_config(ip, port, config_file)
    with _running_connector(config) as connector:
        connector.recover(system)
    console.print(f"Recovered system {system}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind the stub to.")
@click.option("--port", default=49000, show_default=True, type=int, help="UDP port (0 selects a free port).")
@click.option(
    "--value",
    "values",
    multiple=True,
    help="Initial dataref value as PATH=VALUE. Non-numeric values are served as strings.",
)
@click.option(
    "--duration",
    type=float,
    help="Seconds to run before exiting. Runs until interrupted when omitted.",
)
def serve(host: str, port: int, values: Tuple[str, ...], duration: Optional[float]) -> None:
    """Run a local simulator stub that answers dataref subscriptions."""

    if duration is not None and duration < 0:
        raise click.BadParameter("duration must be zero or positive", param_hint="duration")
    initial: Dict[str, Union[float, str]] = {}
    for item in values:
        path, separator, raw = item.partition("=")
        if not separator or not path:
            raise click.BadParameter(f"'{item}' must look like PATH=VALUE", param_hint="--value")
        try:
            initial[path] = float(raw)
        except ValueError:
            initial[path] = raw

    stub = SimulatorStub(host=host, port=port, values=initial)
    try:
        stub.start()
    except OSError as exc:
        raise click.ClickException(f"Failed to start simulator stub: {exc}") from exc
    console.print(
        f"Simulator stub listening on {host}:{stub.port} with {len(initial)} values. Press Ctrl+C to stop."
    )
    stop_at = time.monotonic() + duration if duration is not None else None
    try:
        while stop_at is None or time.monotonic() < stop_at:
            time.sleep(0.1)
    except KeyboardInterrupt:
        console.print("\nStopping simulator stub...")
    finally:
        stub.stop()
    console.print("Simulator stub stopped.")


@cli.command()
@click.option(
    "--config-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="Connector configuration JSON or YAML file.",
)
def inspect(config_file: Path) -> None:
    """Display a summary of a connector configuration."""

    try:
        config = load_configuration(config_file)
    except ConfigurationError as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc

    settings = Table(box=box.ROUNDED, expand=True)
    settings.add_column("Field", style="cyan", no_wrap=True)
    settings.add_column("Value", style="white")
    settings.add_row("Target", f"{config.ip}:{config.port}")
    settings.add_row("Local port", str(config.local_port or "ephemeral"))
    settings.add_row("Check interval (s)", f"{config.check_interval:g}")
    settings.add_row("Max dataref age (s)", f"{config.max_dataref_age:g}")
    settings.add_row("Default frequency (Hz)", str(config.default_frequency))
    console.print(Panel(settings, title="Connector", border_style="bright_cyan"))

    datarefs = Table(box=box.ROUNDED, expand=True)
    datarefs.add_column("Path", style="magenta", overflow="fold")
    datarefs.add_column("Frequency")
    datarefs.add_column("Kind")
    datarefs.add_column("Description")
    if config.datarefs:
        for entry in config.datarefs:
            kind = f"string[{entry.string_length}]" if entry.is_string else "float"
            frequency = str(entry.frequency) if entry.frequency else "default"
            datarefs.add_row(entry.path, frequency, kind, entry.description)
    else:
        datarefs.add_row("—", "", "", "No datarefs configured")
    console.print(Panel(datarefs, title="Datarefs", border_style="yellow"))


@cli.command()
@click.argument("output", type=click.Path(dir_okay=False))
def scaffold(output: str) -> None:
    """Generate a template configuration file."""

    config = ConnectorConfig(
        datarefs=[
            DataRefSubscription(
                path="sim/cockpit2/gauges/indicators/airspeed_kts_pilot",
                frequency=5,
                description="Indicated airspeed",
            ),
            DataRefSubscription(
                path="sim/aircraft/view/acf_tailnum",
                frequency=1,
                string_length=40,
                description="Tail number",
            ),
        ]
    )
    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
    console.print(f"Configuration template written to {output_path}")


@cli.command("catalog")
def list_catalog() -> None:
    """Display the built-in dataref catalog."""

    table = Table(title="Known Datarefs")
    table.add_column("Path", overflow="fold")
    table.add_column("Units")
    table.add_column("Description")
    for entry in CATALOG.values():
        units = f"string[{entry.string_length}]" if entry.string_length else entry.units
        table.add_row(entry.path, units, entry.description)
    console.print(table)


if __name__ == "__main__":  # pragma: no cover
    cli()
