"""Main module for the event media pipeline CLI."""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, Optional, TextIO

import httpx
import uvicorn

from .api import create_app
from .core.exceptions import EventMediaError
from .core.factories import PipelineFactory
from .core.logging_config import enable_debug_logging, log_to_stderr, setup_logger
from .core.models import PipelineConfig
from .core.progress import aiter_ndjson_events, encode_event
from .core.services import require_event

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130

logger = setup_logger("event-media-pipeline.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="event-media-pipeline",
        description="Event Media Pipeline - bulk tagging and album import for event uploads",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Tag every untagged upload of an event, printing progress as NDJSON
  event-media-pipeline analyze --event-id abc123 --stream

  # Import a shared album through a running server
  event-media-pipeline import --event-id abc123 \\
                              --album-url https://photos.app.goo.gl/XXXX \\
                              --server http://localhost:8000

  # Run the HTTP API
  event-media-pipeline serve --port 8000
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    analyze_parser = subparsers.add_parser("analyze", help="Tag the untagged uploads of an event")
    analyze_parser.add_argument("--event-id", required=True, help="Event whose uploads to tag")
    analyze_parser.add_argument(
        "--stream", action="store_true", help="Print every progress event, not only the result"
    )
    analyze_parser.add_argument(
        "--concurrency", type=int, default=None, help="Items processed per slice (default: 3)"
    )

    import_parser = subparsers.add_parser("import", help="Import a shared Google Photos album")
    import_parser.add_argument("--event-id", required=True, help="Event receiving the media")
    import_parser.add_argument("--album-url", required=True, help="Shared album link")

    for sub in (analyze_parser, import_parser):
        sub.add_argument("--server", default=None, help="Send the request to a running API server")
        sub.add_argument("--debug", action="store_true", help="Enable debug logging")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    serve_parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers.add_parser("version", help="Show version information")
    return parser


async def consume_stream(
    client: httpx.AsyncClient,
    url: str,
    payload: Dict[str, Any],
    out: Optional[TextIO] = None,
) -> int:
    """
    POST ``payload`` and echo the NDJSON progress events as they arrive.

    Returns the exit code for the terminal event: 0 for ``complete``, 1 for
    ``error``, a non-2xx answer, or a stream that ended without a terminal
    event.
    """
    out = out or sys.stdout
    terminal = None
    async with client.stream("POST", url, json=payload) as response:
        if not response.is_success:
            body = (await response.aread()).decode("utf-8", errors="replace")
            logger.error(f"Server returned HTTP {response.status_code}: {body[:500]}")
            return EXIT_FAILED
        async for event in aiter_ndjson_events(response.aiter_lines()):
            out.write(encode_event(event))
            out.flush()
            if event.type in ("complete", "error"):
                terminal = event

    if terminal is None:
        logger.error("Stream ended without a terminal event")
        return EXIT_FAILED
    return EXIT_OK if terminal.type == "complete" else EXIT_FAILED


async def run_remote(args: argparse.Namespace, out: Optional[TextIO] = None) -> int:
    server = args.server.rstrip("/")
    if args.command == "analyze":
        url = f"{server}/api/analyze-uploads"
        payload: Dict[str, Any] = {"eventId": args.event_id, "stream": True}
    else:
        url = f"{server}/api/import-google-photos"
        payload = {"eventId": args.event_id, "albumUrl": args.album_url}

    async with httpx.AsyncClient(timeout=httpx.Timeout(None, connect=10.0)) as client:
        return await consume_stream(client, url, payload, out)


async def run_local(
    args: argparse.Namespace, config: PipelineConfig, out: Optional[TextIO] = None
) -> int:
    """Run the batch in-process against the configured backends."""
    out = out or sys.stdout
    services = PipelineFactory.create_services(config)
    try:
        event = await require_event(services.repository, args.event_id)
        if args.command == "analyze":
            job: Any = services.tagging_job(args.event_id)
            echo_all = args.stream
        else:
            if not services.album_source.is_valid_album_url(args.album_url):
                logger.error(f"Invalid Google Photos URL: {args.album_url}")
                return EXIT_FAILED
            job = services.import_job(
                args.event_id, args.album_url, uploaded_by=event.get("created_by")
            )
            echo_all = True

        terminal = None
        async for progress in services.orchestrator.stream(job):
            if echo_all or progress.type in ("complete", "error"):
                out.write(encode_event(progress))
                out.flush()
            terminal = progress
        return EXIT_OK if terminal is not None and terminal.type == "complete" else EXIT_FAILED
    finally:
        await services.aclose()


def serve(args: argparse.Namespace, config: PipelineConfig) -> int:
    uvicorn.run(
        create_app(config=config),
        host=args.host,
        port=args.port,
        log_level="debug" if args.debug else "info",
    )
    return EXIT_OK


def main() -> None:
    """
    Entry point for the command-line interface of the Event Media Pipeline.

    ``analyze`` and ``import`` run in-process unless ``--server`` is given,
    in which case the request is sent to a running API and its NDJSON stream
    is printed as it arrives.
    """
    parser = build_parser()
    args = parser.parse_args()

    # stdout carries NDJSON events
    log_to_stderr()

    if getattr(args, "debug", False):
        enable_debug_logging()

    if args.command == "version":
        print("Event Media Pipeline CLI")
        print("Version 0.1.0")
        print("Bulk media ingestion and tagging for event uploads")
        code = EXIT_OK

    elif args.command in ("analyze", "import"):
        try:
            if args.server:
                code = asyncio.run(run_remote(args))
            else:
                overrides: Dict[str, Any] = {"debug": args.debug}
                if getattr(args, "concurrency", None) is not None:
                    overrides["concurrency"] = args.concurrency
                config = PipelineConfig.from_env(**overrides)
                code = asyncio.run(run_local(args, config))
        except KeyboardInterrupt:
            logger.warning("Interrupted")
            code = EXIT_INTERRUPTED
        except (EventMediaError, httpx.HTTPError) as e:
            logger.error(str(e))
            print(json.dumps({"type": "error", "message": str(e)}), file=sys.stderr)
            code = EXIT_FAILED

    elif args.command == "serve":
        try:
            code = serve(args, PipelineConfig.from_env(debug=args.debug))
        except EventMediaError as e:
            logger.error(str(e))
            code = EXIT_FAILED

    else:
        parser.print_help()
        code = EXIT_FAILED

    sys.exit(code)


if __name__ == "__main__":
    main()
