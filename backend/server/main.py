"""
Local entry point for the Jarvis control server.

Runs uvicorn against server.asgi:app, which loads .env and builds the
agent session from the environment.
"""

from __future__ import annotations

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "server.asgi:app",
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", "8000")),
        log_level="info",
        reload=False,
    )


if __name__ == "__main__":
    main()
