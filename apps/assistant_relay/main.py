"""Entry point for the assistant relay.

Two transports are supported.  Socket Mode (the default) connects out to
Slack with the app-level token; HTTP mode serves Slack's Events API from a
FastAPI application at ``/slack/events``.  Both share the same Bolt app and
the same :class:`apps.assistant_relay.ConversationRelay`.
"""

from __future__ import annotations

from typing import Optional
import asyncio
import sys

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from slack_bolt.adapter.fastapi.async_handler import AsyncSlackRequestHandler
from slack_bolt.async_app import AsyncApp

from apps.assistant_relay import ConversationRelay
from apps.assistant_relay.slack_surface import build_assistant
from apps.run_client import RunClient
from lib.config.relay_loader import ConfigError, RelayConfig, load_relay_config
from lib.storage.context_store import build_context_store
from lib.telemetry.logger import configure_logging, get_logger


logger = get_logger("apps.assistant_relay")


def create_relay(config: RelayConfig, run_client: Optional[RunClient] = None) -> ConversationRelay:
    store = build_context_store(config.context_store_backend, config.context_store_path)
    return ConversationRelay(
        run_client=run_client or RunClient.from_api_key(config.openai_api_key),
        store=store,
        config=config,
    )


def create_bolt_app(config: RelayConfig, relay: ConversationRelay) -> AsyncApp:
    bolt = AsyncApp(
        token=config.slack_bot_token,
        signing_secret=config.slack_signing_secret,
        logger=get_logger("slack_bolt"),
    )
    bolt.assistant(build_assistant(relay))
    return bolt


def create_http_app(config: RelayConfig, bolt: AsyncApp) -> FastAPI:
    handler = AsyncSlackRequestHandler(bolt)
    app = FastAPI()

    @app.post("/slack/events")
    async def slack_events(req: Request):
        """Hand Slack Events API requests to Bolt."""

        return await handler.handle(req)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "assistant_id": config.assistant_id,
            "context_store": config.context_store_backend,
        }

    return app


async def _serve_socket_mode(config: RelayConfig, bolt: AsyncApp) -> None:
    from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler

    handler = AsyncSocketModeHandler(bolt, config.slack_app_token)
    logger.info("Bolt app is running in Socket Mode")
    await handler.start_async()


def _serve_http(config: RelayConfig, bolt: AsyncApp) -> None:
    import uvicorn

    logger.info("Bolt app is serving HTTP on %s:%s", config.http_host, config.http_port)
    uvicorn.run(create_http_app(config, bolt), host=config.http_host, port=config.http_port)


def run(argv: Optional[list] = None) -> int:
    load_dotenv()
    try:
        config = load_relay_config(argv[0] if argv else None)
        config.require_transport_credentials()
    except ConfigError as exc:
        configure_logging()
        logger.error("%s", exc)
        return 1

    configure_logging(config.log_level)
    relay = create_relay(config)
    bolt = create_bolt_app(config, relay)
    try:
        if config.transport == "http":
            _serve_http(config, bolt)
        else:
            asyncio.run(_serve_socket_mode(config, bolt))
    except Exception:
        logger.exception("Failed to start the app")
        return 1
    return 0


def main() -> None:
    sys.exit(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
