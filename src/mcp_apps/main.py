# src/mcp_apps/main.py
"""Entry-point for the mcp-apps CLI."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Optional

import typer
from chuk_term.ui import format_table, output

from mcp_apps.component.models import (
    Capabilities,
    DeviceInfo,
    DeviceType,
    Theme,
    UserAgent,
)
from mcp_apps.config.defaults import (
    DEFAULT_LOCALE,
    DEFAULT_SERVER_HOST,
    DEFAULT_SERVER_PORT,
)
from mcp_apps.config.env_vars import EnvVar
from mcp_apps.config.logging import setup_logging
from mcp_apps.config.settings import AppsSettings
from mcp_apps.constants import MetaKey
from mcp_apps.demo import PIZZA_TEMPLATE_URI, create_demo_server
from mcp_apps.errors import AppsError
from mcp_apps.server.locale import LocaleNegotiator

logger = logging.getLogger(__name__)

app = typer.Typer(add_completion=False, help="MCP Apps host bridge and demo server")


@app.callback()
def main_callback(
    quiet: bool = typer.Option(False, "-q", "--quiet", help="Suppress most log output"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Enable verbose logging"),
    log_level: str = typer.Option(
        "WARNING", "--log-level", envvar=EnvVar.LOG_LEVEL.value, help="Set log level"
    ),
    log_file: Optional[str] = typer.Option(
        None, "--log-file", envvar=EnvVar.LOG_FILE.value, help="Also log to this file"
    ),
) -> None:
    """Configure logging for every sub-command."""
    setup_logging(level=log_level, quiet=quiet, verbose=verbose, log_file=log_file)


def _split(value: Optional[str]) -> Optional[list[str]]:
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


# --------------------------------------------------------------------------- #
# serve                                                                       #
# --------------------------------------------------------------------------- #
@app.command()
def serve(
    host: str = typer.Option(DEFAULT_SERVER_HOST, help="Interface to bind"),
    port: int = typer.Option(DEFAULT_SERVER_PORT, help="Port to bind"),
    locales: Optional[str] = typer.Option(
        "en,es", help="Comma-separated supported locales"
    ),
) -> None:
    """Run the pizza demo app server over websockets."""
    from mcp_apps.server.transport import serve_app_server

    settings = AppsSettings.load(host=host, port=port, supported_locales=_split(locales))
    server = create_demo_server(settings)

    async def _run() -> None:
        ws_server = await serve_app_server(server, settings.host, settings.port)
        output.success(
            f"{server.name} listening on ws://{settings.host}:{settings.port}/mcp"
        )
        await ws_server.serve_forever()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        output.info("Stopped")


# --------------------------------------------------------------------------- #
# tools                                                                       #
# --------------------------------------------------------------------------- #
@app.command()
def tools(
    locale: str = typer.Option(DEFAULT_LOCALE, help="Locale for status strings"),
) -> None:
    """List the demo server's tools."""
    server = create_demo_server()
    resolution = server.negotiator.resolve(locale)

    data: list[dict[str, Any]] = []
    for tool in server.tools.list():
        wire = tool.descriptor.to_wire(resolution.resolved)
        meta = wire.get("_meta", {})
        schemes = tool.descriptor.security_schemes
        data.append(
            {
                "Tool": tool.name,
                "Template": meta.get(MetaKey.OUTPUT_TEMPLATE.value) or "-",
                "Widget": "yes" if meta.get(MetaKey.WIDGET_ACCESSIBLE.value) else "no",
                "Auth": ", ".join(s.type.value for s in schemes) or "default",
                "Invoking": meta.get(MetaKey.INVOKING.value) or "-",
            }
        )

    table = format_table(
        data=data,
        title=f"Tools ({resolution.resolved})",
        columns=["Tool", "Template", "Widget", "Auth", "Invoking"],
    )
    output.print(table)
    if resolution.unavailable:
        output.warning(f"Locale {locale!r} unavailable, showing {resolution.resolved}")


# --------------------------------------------------------------------------- #
# locale                                                                      #
# --------------------------------------------------------------------------- #
@app.command("locale")
def locale_command(
    tag: str = typer.Argument(..., help="Requested BCP 47 tag, e.g. es-419"),
    supported: str = typer.Option("en,es", help="Comma-separated supported locales"),
    default: str = typer.Option(DEFAULT_LOCALE, help="Fallback locale"),
) -> None:
    """Resolve a locale tag the way the server does."""
    negotiator = LocaleNegotiator(_split(supported) or [], default=default)
    resolution = negotiator.resolve(tag)
    table = format_table(
        data=[
            {
                "Requested": tag,
                "Resolved": resolution.resolved,
                "Source": resolution.source.value,
                "Unavailable": "yes" if resolution.unavailable else "no",
            }
        ],
        title="Locale negotiation",
        columns=["Requested", "Resolved", "Source", "Unavailable"],
    )
    output.print(table)


# --------------------------------------------------------------------------- #
# host                                                                        #
# --------------------------------------------------------------------------- #
@app.command()
def host(
    city: str = typer.Option("San Francisco", help="City to show"),
    theme: Theme = typer.Option(Theme.LIGHT, help="Host theme"),
    mobile: bool = typer.Option(False, help="Pretend to be a mobile host"),
    locale: str = typer.Option(DEFAULT_LOCALE, help="Conversation locale"),
    open_browser: bool = typer.Option(True, "--open/--no-open", help="Open the browser"),
) -> None:
    """Show the pizza widget in the browser through the local host."""
    from mcp_apps.host.client import InProcessServerClient
    from mcp_apps.host.host import AppHostServer
    from mcp_apps.host.models import HostContext

    async def _run() -> None:
        server = create_demo_server()
        client = InProcessServerClient(server, locale=locale)
        await client.initialize()

        arguments = {"city": city}
        response = await client.call_tool("show_pizza_list", arguments)
        if "error" in response:
            output.error(response["error"].get("message", "Tool call failed"))
            return

        context = HostContext(theme=theme, locale=locale)
        if mobile:
            context.user_agent = UserAgent(
                device=DeviceInfo(type=DeviceType.MOBILE),
                capabilities=Capabilities(hover=False, touch=True),
            )
        widget_host = AppHostServer(client, context=context)
        try:
            info = await widget_host.launch_app(
                "show_pizza_list",
                PIZZA_TEMPLATE_URI,
                server.name,
                tool_result=response["result"],
                tool_input=arguments,
                open_browser=open_browser,
            )
            output.success(f"Widget running at {info.url} (Ctrl+C to stop)")
            await asyncio.Event().wait()
        finally:
            await widget_host.close_all()
            await client.close()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        output.info("Stopped")
    except AppsError as e:
        output.error(str(e))
        raise typer.Exit(1) from e


def main() -> None:
    """Main entry point."""
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    app()


if __name__ == "__main__":
    main()
