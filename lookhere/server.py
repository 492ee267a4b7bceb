"""LookHere monitor: network core plus the operator HTTP API.

Exposes:
  GET  /health: liveness check
  *    /monitor/...: operator API (see :mod:`lookhere.api`)

Start with::

    python -m lookhere
    # or
    uvicorn lookhere.server:app --host 0.0.0.0 --port 5200
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from lookhere import __version__
from lookhere.api import get_monitor, router, set_monitor
from lookhere.config import MonitorConfig
from lookhere.monitor import Monitor

logger = logging.getLogger(__name__)


def _load_config() -> MonitorConfig:
    path = os.environ.get("LOOKHERE_CONFIG")
    if path:
        return MonitorConfig.load(path)
    return MonitorConfig()


@asynccontextmanager
async def lifespan(app: FastAPI):
    monitor = Monitor(_load_config())
    monitor.start()
    set_monitor(monitor)
    try:
        yield
    finally:
        set_monitor(None)
        monitor.stop()


# ──────────────────────────────────────────────────────────────────
# FastAPI app
# ──────────────────────────────────────────────────────────────────

app = FastAPI(title="LookHere Monitor", version=__version__, lifespan=lifespan)
app.include_router(router)


@app.get("/health")
async def health():
    monitor = get_monitor()
    return {"status": "ok", "sessions": len(monitor.manager.registry)}


# ──────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────

def main():
    import uvicorn
    config = _load_config()
    host = os.environ.get("LOOKHERE_API_HOST", config.api_host)
    port = int(os.environ.get("LOOKHERE_API_PORT", str(config.api_port)))
    logging.basicConfig(
        level=logging.DEBUG if os.environ.get("LOOKHERE_DEBUG") else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting LookHere monitor API on %s:%d", host, port)
    uvicorn.run("lookhere.server:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
