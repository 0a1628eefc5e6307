"""
FastAPI server for the bot dashboard. Runs as a daemon thread.

Endpoints act on a BotRuntime: scan results, engine deployment, start/stop of
the execution loop and a status snapshot.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from client.dexscreener import FeedUnavailable
from executor.runtime import BotRuntime, EngineNotDeployed

logger = logging.getLogger(__name__)


def create_app(runtime: BotRuntime) -> Any:
    """Build and return the FastAPI application."""
    from fastapi import FastAPI
    from fastapi.middleware.cors import CORSMiddleware
    from fastapi.responses import JSONResponse

    app = FastAPI(title="Flash Arbitrage Dashboard", docs_url="/docs")
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    # ── Opportunities ──

    @app.get("/opportunities")
    def get_opportunities():
        try:
            return runtime.opportunities()
        except FeedUnavailable as e:
            logger.warning("Opportunity scan failed: %s", e)
            return JSONResponse({"error": str(e)}, status_code=502)

    # ── Engine ──

    @app.post("/deploy")
    def deploy():
        try:
            address = runtime.deploy()
        except Exception as e:
            logger.error("Deployment error: %s", e, exc_info=True)
            return JSONResponse({"success": False, "error": str(e)}, status_code=500)
        return {"success": True, "engineAddress": address}

    # ── Bot ──

    @app.post("/bot/start")
    def start_bot():
        try:
            started = runtime.start()
        except EngineNotDeployed as e:
            return JSONResponse({"error": str(e)}, status_code=400)
        message = "Arbitrage bot started" if started else "Arbitrage bot already running"
        return {"success": True, "message": message}

    @app.post("/bot/stop")
    def stop_bot():
        runtime.stop()
        return {"success": True, "message": "Arbitrage bot stopped"}

    # ── Status ──

    @app.get("/status")
    def get_status():
        return runtime.status()

    return app


def start_server(runtime: BotRuntime, host: str = "0.0.0.0", port: int = 3001) -> threading.Thread:
    """Start FastAPI in a daemon thread. Returns the thread."""
    import uvicorn

    app = create_app(runtime)

    def _run():
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )

    thread = threading.Thread(target=_run, daemon=True, name="dashboard-server")
    thread.start()
    logger.info("Dashboard server started at http://%s:%d", host, port)
    return thread
