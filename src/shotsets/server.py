import logging
import os
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from .api import routes, ws
from . import db
from .config import load_config

log = logging.getLogger("shotsets.server")


def create_app(db_path: Optional[str] = None) -> FastAPI:
    # Initialize database (default to in-memory unless SHOTSETS_DB is set)
    db.init(db_path or os.environ.get("SHOTSETS_DB"))

    app = FastAPI(
        title="Screenshot sets",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(routes.router, prefix="/api")
    app.include_router(ws.router)
    return app


def run_server(host: str = "127.0.0.1", port: int = 8768) -> None:
    cfg = load_config()
    db_path = cfg.db_path
    # Durable default DB path when none is configured
    if not db_path:
        state_dir = Path.home() / ".local" / "state" / "shotsets"
        state_dir.mkdir(parents=True, exist_ok=True)
        db_path = str(state_dir / "shotsets.db")
    app = create_app(db_path)
    log.info("Serving screenshot sets from %s", db_path)
    uvicorn.run(app, host=host, port=port, log_level="info")
