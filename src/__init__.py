# src/__init__.py
"""LinkTherapy backend API."""
import logging

from flask import Flask
from flask_cors import CORS

from src.api import register_blueprints
from src.config import Config
from src.db import health_check, init_db, register_cli_commands
from src.utils.logger import setup_logging

logger = logging.getLogger(__name__)


def create_app(config: Config) -> Flask:
    """Application factory."""
    app = Flask(__name__)

    # Convert our Config object to Flask's config format
    app.config.from_object(config)

    # Also store our config object for direct access
    app.linktherapy_config = config

    # Setup logging
    setup_logging(app)

    # Initialize extensions
    CORS(app, origins=config.CORS_ORIGINS.split(","))

    logger.info("Initializing database connection...")
    try:
        init_db(app, config)
        logger.info("✅ Database initialized successfully")
    except Exception as e:
        logger.error(f"❌ Database initialization failed: {str(e)}")
        logger.warning("🚨 App starting without database connection - health endpoint will show degraded status")

    # Register CLI commands
    register_cli_commands(app)

    # Register blueprints
    register_blueprints(app)

    # Background payment jobs
    if not config.TESTING and config.ENABLE_SCHEDULER:
        try:
            from src.services.scheduler import init_scheduler

            init_scheduler(app)
        except Exception as e:
            logger.warning(f"Failed to initialize scheduler: {str(e)}")

    @app.route("/health")
    def health():
        db_healthy = health_check()
        status = "healthy" if db_healthy else "degraded"

        return {
            "status": status,
            "service": "linktherapy-backend",
            "database": "healthy" if db_healthy else "unhealthy",
            "version": "1.0.0",
            "environment": config.ENV,
        }, 200  # Always return 200 for healthcheck endpoint availability

    @app.route("/debug/routes")
    def list_routes():
        """Debug endpoint to see all registered routes."""
        if config.ENV == "prod":
            return {"error": "Debug endpoints disabled in production"}, 403

        routes = []
        for rule in app.url_map.iter_rules():
            routes.append(
                {
                    "endpoint": rule.endpoint,
                    "methods": sorted(rule.methods),
                    "rule": str(rule),
                }
            )
        return {"routes": routes}

    @app.route("/debug/config")
    def debug_config():
        """Debug endpoint to check configuration (don't use in production)."""
        if config.ENV == "prod":
            return {"error": "Debug endpoints disabled in production"}, 403

        from src.services.cache_service import cache_service
        from src.services.scheduler import get_scheduler_status

        return {
            **config.get_database_info(),
            "email_configured": bool(config.RESEND_API_KEY),
            "s3_configured": config.IS_AWS,
            "cache_backend": "redis" if cache_service.connected else "memory",
            "scheduler": get_scheduler_status(),
            "environment": config.ENV,
            "debug_mode": config.DEBUG,
        }

    logger.info("✅ LinkTherapy backend initialized successfully")
    return app
