"""raidbot command-line interface.

Commands:
    serve   Run the HTTP API with uvicorn
    ask     Run one chat request in-process
    chat    Send a chat request to a running endpoint
    health  Show provider status (optionally probing each provider)
"""

import asyncio
import logging

import click

from raidbot import __version__
from raidbot.config.server import ServiceConfig, set_config

logger = logging.getLogger(__name__)


def _service(config: ServiceConfig):
    from raidbot.core.service import AIService

    return AIService(config)


@click.group()
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to a raidbot TOML config file.",
)
@click.option(
    "--env",
    "environment",
    type=click.Choice(["development", "production", "test"]),
    default=None,
    help="Environment profile (overrides RAIDBOT_ENV).",
)
@click.version_option(__version__, prog_name="raidbot")
@click.pass_context
def cli(ctx: click.Context, config_file, environment) -> None:
    """Resilient multi-provider chat relay."""
    config = ServiceConfig.from_env(config_file=config_file, environment=environment)
    config.setup_logging()
    set_config(config)
    ctx.obj = config


@cli.command("serve")
@click.option("--host", default=None, help="Bind address (default from config).")
@click.option("--port", type=int, default=None, help="Bind port (default from config).")
@click.pass_obj
def serve_cmd(config: ServiceConfig, host, port) -> None:
    """Run the HTTP API."""
    import uvicorn

    from raidbot.api.app import create_app

    app = create_app(config=config)
    uvicorn.run(
        app,
        host=host or config.host,
        port=port or config.port,
        log_level=config.log_level.lower(),
    )


@cli.command("ask")
@click.argument("message")
@click.option("--temperature", type=float, default=None, help="Sampling temperature.")
@click.option("--max-tokens", type=int, default=None, help="Maximum generated tokens.")
@click.option("--json", "as_json", is_flag=True, help="Print the raw response envelope.")
@click.pass_obj
def ask_cmd(config: ServiceConfig, message: str, temperature, max_tokens, as_json: bool) -> None:
    """Send MESSAGE through the provider chain in-process."""
    from raidbot.cli.output import emit_error, emit_success

    options = {}
    if temperature is not None:
        options["temperature"] = temperature
    if max_tokens is not None:
        options["max_tokens"] = max_tokens

    service = _service(config)
    envelope = asyncio.run(service.generate_response(message, options or None))
    data = envelope.to_dict()

    if not envelope.success:
        emit_error(
            f"{envelope.error} ({data['type']}, correlation id {envelope.correlation_id})",
            data=data,
            as_json=as_json,
        )
    emit_success(data, as_json=as_json, text=envelope.response or "")


@cli.command("chat")
@click.argument("message")
@click.option("--url", default=None, help="Endpoint URL (default from [client] config).")
@click.option("--json", "as_json", is_flag=True, help="Print the raw response envelope.")
@click.pass_obj
def chat_cmd(config: ServiceConfig, message: str, url, as_json: bool) -> None:
    """Send MESSAGE to a running raidbot endpoint."""
    from raidbot.cli.output import emit_error, emit_success
    from raidbot.client.session import ChatClient, ChatSession

    settings = config.client
    if url:
        settings.api_url = url

    async def _run():
        async with ChatClient.from_settings(settings) as client:
            session = ChatSession(client, max_retries=settings.max_manual_retries)
            await session.send_message(message)
            return session

    session = asyncio.run(_run())
    if session.error is not None:
        error = session.error
        emit_error(
            f"{error.message} ({error.kind.value})",
            data={"success": False, "error": error.message, "type": error.kind.value,
                  "correlationId": error.correlation_id},
            as_json=as_json,
        )
    envelope = session.response
    emit_success(envelope.to_dict(), as_json=as_json, text=envelope.response or "")


@cli.command("health")
@click.option("--probe", is_flag=True, help="Send a test generation to each provider.")
@click.option("--json", "as_json", is_flag=True, help="Print JSON.")
@click.pass_obj
def health_cmd(config: ServiceConfig, probe: bool, as_json: bool) -> None:
    """Show provider configuration and circuit status."""
    from raidbot.cli.output import emit_json

    service = _service(config)
    status = service.get_status()
    if probe:
        status["probes"] = asyncio.run(service.probe_providers())

    if as_json:
        emit_json(status)
        return

    click.echo(f"Overall: {status['status']}")
    for name, info in status["providers"].items():
        line = f"  {name:<8} {info['status']:<15} circuit={info['circuit']}"
        probe_result = status.get("probes", {}).get(name)
        if probe_result is not None:
            outcome = "ok" if probe_result["ok"] else probe_result["type"]
            line += f" probe={outcome} ({probe_result['latency_ms']}ms)"
        click.echo(line)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
