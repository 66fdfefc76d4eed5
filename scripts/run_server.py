#!/usr/bin/env python3
"""Start the bids_matrix API server."""

import argparse
import logging
import os
import sys
from pathlib import Path

import uvicorn

sys.path.insert(0, str(Path(__file__).parent.parent))

from bids_matrix.server.state import DATA_FILE_ENV, PROFILE_ENV


def main():
    parser = argparse.ArgumentParser(description="bids_matrix API server")
    parser.add_argument("--port", type=int, default=8020, help="Server port (default: 8020)")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Server host (default: 127.0.0.1)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument("--data", type=str, default="data/recommendations.json",
                        help="Recommendations JSON loaded on first request")
    parser.add_argument("--profile", type=str, default=None, help="Config profile (paper, live)")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # uvicorn imports the app by path, so settings travel through the environment
    os.environ[DATA_FILE_ENV] = args.data
    if args.profile:
        os.environ[PROFILE_ENV] = args.profile

    print(f"\n  bids_matrix")
    print(f"  API:   http://{args.host}:{args.port}")
    print(f"  Docs:  http://{args.host}:{args.port}/docs\n")

    uvicorn.run(
        "bids_matrix.server.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
