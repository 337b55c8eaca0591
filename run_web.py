#!/usr/bin/env python3
"""Serve the staticizer JSON API with uvicorn.

    STATICIZER_WEB_TOKEN=<token> python run_web.py [--host HOST] [--port PORT]

Requests go to POST /<token>/api/analyze. Without STATICIZER_WEB_TOKEN the
token check is off and /api/analyze is served as well.
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

import uvicorn  # noqa: E402

log = logging.getLogger("run_web")


def main() -> None:
    parser = argparse.ArgumentParser(description="Staticizer web API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload (development)")
    args = parser.parse_args()

    if not os.environ.get("STATICIZER_WEB_TOKEN"):
        logging.basicConfig(level=logging.WARNING)
        log.warning("STATICIZER_WEB_TOKEN is not set; every request is accepted")

    uvicorn.run("web.app:app", host=args.host, port=args.port, reload=args.reload, log_level="info")


if __name__ == "__main__":
    main()
