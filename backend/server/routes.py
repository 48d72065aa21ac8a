"""
Route registration for the liveness server.

Responsibilities:
- Define the single HTTP liveness route
- Pull dependencies from app.state
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/", response_class=PlainTextResponse)
    async def liveness() -> str: # pyright: ignore[reportUnusedFunction]
        return f"{app.state.config.bot_name} is running!"
