"""
JIANGHU — JIANGHU Engine v1.0
Standalone game server. A round-based wuxia life simulation.

Run:  python jianghu.py
Open: http://localhost:8000/docs
"""

import logging
import os
import sys

import uvicorn

# When running under pythonw.exe, stdout/stderr are None — redirect to devnull
if sys.stdout is None:
    sys.stdout = open(os.devnull, 'w')
if sys.stderr is None:
    sys.stderr = open(os.devnull, 'w')

# Ensure engine directory is on the path
ENGINE_DIR = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, ENGINE_DIR)

from web.routes import app, init_game

PORT = int(os.environ.get("JIANGHU_PORT", "8000"))
DATA_DIR = os.environ.get("JIANGHU_DATA_DIR", os.path.join(ENGINE_DIR, "data"))
LOG_LEVEL = os.environ.get("JIANGHU_LOG_LEVEL", "INFO")


def main():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

    # Initialize game state
    init_game(DATA_DIR)

    print("=" * 50)
    print("  JIANGHU — JIANGHU Engine v1.0")
    print("=" * 50)
    print(f"  Server: http://localhost:{PORT}")
    print(f"  Data:   {DATA_DIR}")
    print()
    print("  Press Ctrl+C to stop.")
    print("=" * 50)
    print()

    # Start server (blocking)
    uvicorn.run(app, host="0.0.0.0", port=PORT, log_level="warning")


if __name__ == "__main__":
    main()
