"""
Report module: dashboard HTTP API over the bot runtime.

Usage:
    from report import start_server
    start_server(runtime, host="0.0.0.0", port=3001)
"""

from __future__ import annotations

from report.server import create_app, start_server

__all__ = ["create_app", "start_server"]
