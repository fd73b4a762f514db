import argparse
import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional

import httpx
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from rich.console import Console

from relay_core import (
    ChatRequestError,
    CredentialPool,
    NoCredentialsError,
    RetryOrchestrator,
    TimeoutConfig,
    UpstreamClient,
    mask_credential,
    to_sse,
)
from relay_core.error_handler import INTERNAL_ERROR_MESSAGE
from relay_core.types import Done, Error, OutboundEvent

from relay_app import metrics
from relay_app.config import RelaySettings
from relay_app.paths import get_env_file
from relay_app.request_logger import log_request_to_console

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


def get_orchestrator(request: Request) -> RetryOrchestrator:
    """Dependency to get the orchestrator instance from the app state."""
    return request.app.state.orchestrator


def error_stream_response(message: str) -> StreamingResponse:
    """A one-shot event stream carrying a single error event."""

    async def one_shot() -> AsyncGenerator[str, None]:
        yield to_sse(Error(message))

    return StreamingResponse(
        one_shot(), media_type="text/event-stream", headers=SSE_HEADERS
    )


async def sse_event_stream(
    request: Request, events: AsyncGenerator[OutboundEvent, None]
) -> AsyncGenerator[str, None]:
    """
    Renders relay events as SSE frames for one chat turn.

    Stops early when the client goes away; closing `events` closes the
    upstream response. An unexpected fault mid-stream still ends the turn
    with an error event unless a terminal event already went out.
    """
    terminated = False
    try:
        async for event in events:
            if await request.is_disconnected():
                logging.warning("Client disconnected, stopping stream.")
                metrics.record_turn("disconnected")
                break
            yield to_sse(event)
            if event.terminal:
                terminated = True
                metrics.record_turn("done" if isinstance(event, Done) else "error")
                break
    except Exception as e:
        logging.error(f"Chat endpoint error: {e}")
        if not terminated:
            metrics.record_turn("error")
            yield to_sse(Error(INTERNAL_ERROR_MESSAGE))
    finally:
        await events.aclose()


def create_app(
    settings: Optional[RelaySettings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the relay application.

    `http_client` is used for all upstream traffic when given (and left
    open on shutdown); otherwise the app owns a client of its own.
    """
    settings = settings if settings is not None else RelaySettings.from_env()
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=TimeoutConfig.streaming())

    pool = CredentialPool(settings.credentials, mode=settings.rotation_mode)
    upstream = UpstreamClient(
        client,
        api_url=settings.api_url,
        referer=settings.referer,
        title=settings.title,
        attempt_timeout=settings.attempt_timeout,
    )
    orchestrator = RetryOrchestrator(
        pool,
        upstream,
        settings.allowed_models,
        on_attempt=metrics.record_attempt,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Report the credential pool on startup and release the upstream client on shutdown."""
        logging.info(f"Loaded {pool.size} API key(s)")
        if pool.size == 0:
            logging.warning("No API keys configured. Chat requests will be rejected.")
        yield
        if owns_client:
            await client.aclose()
            logging.info("Upstream client closed.")

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.pool = pool
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def observe_requests(request: Request, call_next):
        timer = metrics.start_timer()
        response = await call_next(request)
        metrics.observe_http_request(
            request.method,
            metrics.get_route_template(request),
            response.status_code,
            time.perf_counter() - timer.start,
        )
        return response

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/models")
    async def list_models():
        return {
            "object": "list",
            "data": [{"id": model.id, "name": model.name} for model in settings.models],
        }

    if settings.metrics_enabled:

        @app.get("/metrics")
        async def prometheus_metrics():
            return Response(
                content=metrics.metrics_payload(),
                media_type=metrics.CONTENT_TYPE_LATEST,
            )

    @app.post("/api/chat")
    async def chat(
        request: Request,
        orchestrator: RetryOrchestrator = Depends(get_orchestrator),
    ):
        """Relay one chat turn and stream the reply as server-sent events."""
        try:
            try:
                payload = await request.json()
            except ValueError:
                return JSONResponse(
                    status_code=400, content={"error": "Invalid JSON in request body."}
                )

            log_request_to_console(request.client, payload)

            try:
                chat_request = orchestrator.validate(payload)
            except ChatRequestError as e:
                return JSONResponse(status_code=400, content={"error": e.message})
            except NoCredentialsError as e:
                return JSONResponse(status_code=500, content={"error": e.message})

            return StreamingResponse(
                sse_event_stream(request, orchestrator.stream_chat(chat_request)),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )
        except Exception as e:
            logging.error(f"Chat endpoint error: {e}")
            metrics.record_turn("error")
            return error_stream_response(INTERNAL_ERROR_MESSAGE)

    return app


def check_setup(settings: RelaySettings, console: Console) -> int:
    """Print what the relay would start with. Returns the process exit code."""
    console.print("[bold]Checking relay setup...[/bold]\n")
    console.print(f"Python version: {sys.version.split()[0]}")

    if not settings.credentials:
        console.print("[red]No API keys found.[/red]")
        console.print("   Please add OPENROUTER_API_KEYS to your .env file\n")
        return 1

    console.print(f"[green]Found {len(settings.credentials)} API key(s)[/green]")
    for i, key in enumerate(settings.credentials, start=1):
        preview = mask_credential(key) if key else "invalid"
        console.print(f"   Key {i}: {preview}")

    console.print(f"Rotation mode: {settings.rotation_mode.value}")
    console.print(f"Allowed models: {', '.join(settings.allowed_models)}")
    console.print(f"Upstream: {settings.api_url}")
    console.print("\n[bold green]Relay setup looks good.[/bold green]\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Streaming chat relay server")
    parser.add_argument(
        "--host", type=str, default="0.0.0.0", help="Host to bind the server to."
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to run the server on (default: $PORT or 3001).",
    )
    parser.add_argument(
        "--check-setup",
        action="store_true",
        help="Validate the configuration, show masked keys and exit.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    load_dotenv(get_env_file())
    console = Console()

    settings = RelaySettings.from_env()
    if args.check_setup:
        sys.exit(check_setup(settings, console))

    from relay_app.logging_config import configure_logging

    configure_logging()

    port = args.port if args.port is not None else int(os.getenv("PORT", "3001"))

    console.print("━" * 70)
    console.print(f"Starting relay on {args.host}:{port}")
    console.print(f"Loaded {len(settings.credentials)} API key(s)")
    console.print(f"Upstream: {settings.api_url}")
    console.print("━" * 70)

    import uvicorn

    uvicorn.run(create_app(settings), host=args.host, port=port)


if __name__ == "__main__":
    main()
