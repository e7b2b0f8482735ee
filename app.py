#!/usr/bin/env python
"""Deployment entry point for the LinkTherapy backend (`gunicorn app:app`)."""
import logging
import os

from src import create_app
from src.config import get_config

logger = logging.getLogger(__name__)

ENV = os.getenv("ENV", "prod")

app = create_app(get_config(ENV))


def main():
    """Serve with Flask's server when gunicorn is not in front."""
    port = int(os.getenv("PORT", 8080))
    logger.info(f"🌍 Starting {ENV} server on 0.0.0.0:{port}")
    app.run(host="0.0.0.0", port=port, debug=False, use_reloader=False)


if __name__ == "__main__":
    main()
