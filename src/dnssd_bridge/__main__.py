"""CLI entry point for the DNS-SD bridge."""

import asyncio
import json
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import click

from .backends.zeroconf_backend import ZeroconfBackend
from .config import BridgeConfig
from .dnssd.async_client import AsyncDnssdClient
from .dnssd.bridge import DnssdBridge
from .exceptions import DnssdError
from .logging_setup import configure_logging
from .models.common import DnssdServiceProtocol
from .models.service import DnssdService, TextEntry


def _service_to_dict(service: DnssdService, addresses: Optional[List[Any]] = None) -> Dict[str, Any]:
    data = service.model_dump(mode="json", exclude={"text_entries"})
    data["txt"] = {
        entry.key: None if entry.data is None else entry.data.decode("utf-8", errors="replace")
        for entry in service.text_entries
    }
    if addresses is not None:
        data["addresses"] = [str(a) for a in addresses]
    return data


def _parse_txt(pairs: List[str]) -> List[TextEntry]:
    entries = []
    for pair in pairs:
        key, sep, value = pair.partition("=")
        # "key" alone publishes a key with no value
        entries.append(TextEntry(key=key, data=value.encode("utf-8") if sep else None))
    return entries


def _run(config: BridgeConfig, workflow: Any) -> None:
    """Runs `workflow(client)` against a freshly bound zeroconf backend."""
    backend = ZeroconfBackend(config.zeroconf)
    bridge = DnssdBridge(app_config=config)
    bridge.bind(backend)

    async def main() -> None:
        await workflow(AsyncDnssdClient(bridge))

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user.", err=True)
        sys.exit(130)
    except (DnssdError, asyncio.TimeoutError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        backend.close()


@click.group()
@click.option(
    "--config-file", "-c",
    type=click.Path(exists=True, dir_okay=False, resolve_path=True),
    help="Path to a JSON configuration file.",
    envvar="DNSSD_BRIDGE_CONFIG_FILE"
)
@click.option(
    "--log-level", "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Override the logging level (e.g., DEBUG, INFO).",
)
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"], case_sensitive=False),
    default=None,
    help="Override logging format.",
)
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[str], log_level: Optional[str], log_format: Optional[str]) -> None:
    """DNS-SD Bridge - browse, resolve and publish DNS-SD services."""
    try:
        if config_file:
            cfg = BridgeConfig.from_file(Path(config_file))
        else:
            cfg = BridgeConfig()
    except Exception as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)

    if log_level:
        cfg.logging.level = log_level.upper()
    if log_format:
        cfg.logging.format = log_format.lower()
    configure_logging(cfg.logging)

    ctx.ensure_object(dict)
    ctx.obj["config"] = cfg


protocol_option = click.option(
    "--protocol", "-p",
    type=click.Choice([DnssdServiceProtocol.TCP.value, DnssdServiceProtocol.UDP.value]),
    default=DnssdServiceProtocol.TCP.value,
    show_default=True,
)


@cli.command()
@click.argument("service_type")
@protocol_option
@click.option("--duration", "-d", type=float, default=5.0, show_default=True, help="Seconds to browse for.")
@click.pass_context
def browse(ctx: click.Context, service_type: str, protocol: str, duration: float) -> None:
    """Browse for SERVICE_TYPE (e.g. '_matter' or '_matter._sub._I1234')."""
    config: BridgeConfig = ctx.obj["config"]

    async def workflow(client: AsyncDnssdClient) -> None:
        seen: set = set()
        deadline = time.monotonic() + duration
        batches = client.browse(service_type, protocol)
        try:
            while (remaining := deadline - time.monotonic()) > 0:
                try:
                    batch = await asyncio.wait_for(batches.__anext__(), remaining)
                except asyncio.TimeoutError:
                    break
                for service in batch:
                    if service.name not in seen:
                        seen.add(service.name)
                        click.echo(json.dumps(_service_to_dict(service)))
        finally:
            await batches.aclose()

    _run(config, workflow)


@cli.command()
@click.argument("instance_name")
@click.argument("service_type")
@protocol_option
@click.option("--timeout", "-t", type=float, default=10.0, show_default=True)
@click.pass_context
def resolve(ctx: click.Context, instance_name: str, service_type: str, protocol: str, timeout: float) -> None:
    """Resolve INSTANCE_NAME of SERVICE_TYPE to an address, port and TXT record."""
    config: BridgeConfig = ctx.obj["config"]

    async def workflow(client: AsyncDnssdClient) -> None:
        result = await client.resolve(
            DnssdService(name=instance_name, type=service_type, protocol=protocol), timeout=timeout
        )
        click.echo(json.dumps(_service_to_dict(result.service, result.addresses), indent=2))

    _run(config, workflow)


@cli.command()
@click.argument("instance_name")
@click.argument("service_type")
@click.argument("port", type=click.IntRange(1, 0xFFFF))
@protocol_option
@click.option("--host-name", default="", help="Host name to advertise (defaults to this machine's).")
@click.option("--txt", "txt_pairs", multiple=True, help="TXT entry as key=value, or bare key. Repeatable.")
@click.option("--subtype", "subtypes", multiple=True, help="Subtype to advertise. Repeatable.")
@click.option("--duration", "-d", type=float, default=None, help="Seconds to stay published (default: until interrupted).")
@click.pass_context
def publish(
    ctx: click.Context,
    instance_name: str,
    service_type: str,
    port: int,
    protocol: str,
    host_name: str,
    txt_pairs: List[str],
    subtypes: List[str],
    duration: Optional[float],
) -> None:
    """Publish INSTANCE_NAME of SERVICE_TYPE on PORT."""
    config: BridgeConfig = ctx.obj["config"]
    service = DnssdService(
        name=instance_name,
        host_name=host_name,
        type=service_type,
        protocol=protocol,
        port=port,
        text_entries=_parse_txt(list(txt_pairs)),
        subtypes=list(subtypes),
    )

    async def workflow(client: AsyncDnssdClient) -> None:
        await client.publish(service)
        click.echo(f"Published {instance_name} ({service_type}) on port {port}", err=True)
        try:
            if duration is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(duration)
        finally:
            await client.remove_services()

    _run(config, workflow)


@cli.command()
def version() -> None:
    """Show version information."""
    from . import __version__
    click.echo(f"DNS-SD Bridge v{__version__}")


@cli.command()
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show current configuration."""
    config = ctx.obj["config"]
    click.echo(json.dumps(config.model_dump(mode="json"), indent=2))


if __name__ == "__main__":
    cli()
