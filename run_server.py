#!/usr/bin/env python
"""
Server Entry Point

Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py
    Gunicorn:     python run_server.py --gunicorn
"""

import argparse
import subprocess

import uvicorn

from bookshop.config import get_settings

APP_PATH = "bookshop.main:app"


def run_dev_server(port: int) -> None:
    """Single process with auto-reload."""
    settings = get_settings()
    uvicorn.run(
        APP_PATH,
        host=settings.api_host,
        port=port,
        reload=True,
        reload_dirs=["bookshop"],
        log_level="debug",
    )


def run_prod_server(port: int) -> None:
    """Uvicorn with one process per configured worker."""
    settings = get_settings()
    uvicorn.run(
        APP_PATH,
        host=settings.api_host,
        port=port,
        workers=settings.api_workers,
        log_level=settings.monitoring.log_level.lower(),
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
    )


def run_gunicorn() -> None:
    """Gunicorn managing Uvicorn workers."""
    subprocess.run(["gunicorn", APP_PATH, "-c", "gunicorn.conf.py"], check=True)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Bookshop Orders API Server")
    parser.add_argument("--dev", action="store_true", help="Run in development mode with auto-reload")
    parser.add_argument("--gunicorn", action="store_true", help="Run under Gunicorn")
    parser.add_argument("--port", type=int, default=None, help="Port (default: API_PORT)")
    args = parser.parse_args()

    port = args.port or get_settings().api_port

    if args.dev:
        run_dev_server(port)
    elif args.gunicorn:
        run_gunicorn()
    else:
        run_prod_server(port)
