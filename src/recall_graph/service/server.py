from __future__ import annotations

import asyncio

import uvicorn

from ..runtime import open_runtime
from ..settings import RecallGraphSettings, settings as default_settings
from .app import create_app


async def serve(s: RecallGraphSettings | None = None) -> None:
    s = s or default_settings
    runtime = await open_runtime(s)
    app = create_app(runtime)

    config = uvicorn.Config(
        app,
        host=s.bind_host,
        port=s.bind_port,
        log_level=(s.log_level or "info").lower(),
    )
    server = uvicorn.Server(config)

    try:
        await server.serve()
    finally:
        await runtime.aclose()


def main() -> None:
    asyncio.run(serve())


if __name__ == "__main__":
    main()
