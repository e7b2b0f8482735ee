#!/usr/bin/env python
"""Local development server.

The reloader spawns a second process, so the scheduler is kept off unless
ENABLE_SCHEDULER is set explicitly.
"""
import os

from src import create_app
from src.config import get_config

if __name__ == "__main__":
    os.environ.setdefault("ENABLE_SCHEDULER", "false")
    config = get_config(os.getenv("ENV", "dev"))
    app = create_app(config)

    app.run(
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", 5000)),
        debug=config.DEBUG,
    )
