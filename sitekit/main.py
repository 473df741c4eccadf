from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sitekit import __version__
from sitekit.api.rest import oauth_router, register_exception_handlers, router
from sitekit.config import get_config
from sitekit.db.session import init_db, ping_db

config = get_config()

logging.basicConfig(
    level=getattr(logging, config.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Site Kit",
    version=__version__,
    docs_url="/docs",
    redoc_url=None,
)

if config.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

register_exception_handlers(app)
app.include_router(router)
app.include_router(oauth_router)


@app.on_event("startup")
def _startup() -> None:
    """Initialize the database on startup."""
    init_db()


@app.get("/")
def root() -> dict:
    return {
        "service": "Site Kit",
        "version": __version__,
        "routers": ["/googlesitekit/v1", "/googlesitekit/oauth"],
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/health")
def health() -> dict:
    return {"ok": True, "db": ping_db()}


def run() -> None:
    import uvicorn

    uvicorn.run("sitekit.main:app", host=os.getenv("HOST", "127.0.0.1"), port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    run()
