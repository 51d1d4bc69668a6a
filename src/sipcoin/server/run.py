"""Helpers for running the SipCoin ASGI application under uvicorn."""

from __future__ import annotations

import asyncio
import os
from typing import Optional

import uvicorn

APP_PATH = "sipcoin.server.app:app"


async def _serve_for(server: uvicorn.Server, duration: float) -> None:
    """Run the server and ask it to exit once ``duration`` seconds have passed."""

    async def _stop_later() -> None:
        await asyncio.sleep(duration)
        server.should_exit = True

    asyncio.create_task(_stop_later())
    await server.serve()


def parse_duration(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        parsed = float(value)
    except ValueError as exc:
        raise SystemExit(f"Invalid SIPCOIN_SERVER_DURATION '{value}': {exc}") from exc
    if parsed <= 0:
        raise SystemExit("SIPCOIN_SERVER_DURATION must be greater than 0 when provided.")
    return parsed


def serve(
    host: Optional[str] = None,
    port: Optional[int] = None,
    *,
    reload: bool = False,
    duration: Optional[float] = None,
) -> None:
    """Start uvicorn; unset arguments fall back to SIPCOIN_SERVER_* variables."""

    host = host or os.environ.get("SIPCOIN_SERVER_HOST", "127.0.0.1")
    port = port or int(os.environ.get("SIPCOIN_SERVER_PORT", "8000"))
    if duration is None:
        duration = parse_duration(os.environ.get("SIPCOIN_SERVER_DURATION"))

    if reload:
        if duration is not None:
            raise SystemExit("Reload mode cannot be combined with a server duration.")
        uvicorn.run(APP_PATH, host=host, port=port, reload=True)
        return

    server = uvicorn.Server(uvicorn.Config(APP_PATH, host=host, port=port, reload=False))
    if duration is not None:
        asyncio.run(_serve_for(server, duration))
        return
    server.run()


def main() -> None:
    """Entry point for the `sipcoin-server` console script."""

    serve(reload=os.environ.get("SIPCOIN_SERVER_RELOAD") == "1")


if __name__ == "__main__":
    main()
