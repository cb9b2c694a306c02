"""Flask application factory."""

import logging
import os
from datetime import datetime, timezone
from flask import Flask
from flask_cors import CORS

from support_services.config import MetricsConfig, load_config
from support_services.result_cache import ResultCache
from support_services.support_metrics import SupportMetricsService

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level=None):
    """Send service logs to stderr at LOG_LEVEL (default INFO)."""
    level = level or os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)


def create_app(config: MetricsConfig = None, cache: ResultCache = None):
    """Create and configure the Flask application.

    Args:
        config: Metrics settings; loaded from env and config file if omitted
        cache: Result cache to share across requests; built from config if omitted
    """
    configure_logging()
    app = Flask(__name__)

    config = config or load_config()
    if cache is None:
        cache = ResultCache(
            ttl_seconds=config.cache_ttl_seconds,
            max_entries=config.cache_max_entries
        )
    # Drop anything a previous code version may have left behind
    cache.clear()

    app.extensions["support_metrics"] = SupportMetricsService(cache, config)
    app.logger.info(
        f"Metrics service ready for project {config.project_key} "
        f"(cache ttl {config.cache_ttl_seconds}s, max {config.cache_max_entries} entries)"
    )

    # Enable CORS for the dashboard sidebar
    CORS(app, resources={
        r"/api/*": {
            "origins": "*",
            "methods": ["GET", "POST", "DELETE", "OPTIONS"],
            "allow_headers": [
                "Content-Type",
                "X-Jira-Domain", "X-Jira-Server", "X-Jira-Email", "X-Jira-Token"
            ]
        }
    })

    # Register blueprints
    from support_api.api import metrics, debug
    app.register_blueprint(metrics.bp)
    app.register_blueprint(debug.bp)

    # Health check endpoint
    @app.route("/api/health")
    def health():
        return {
            "status": "ok",
            "message": "backend running",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    return app


def main():
    """Run the development server."""
    port = int(os.environ.get("PORT", 5000))
    app = create_app()
    app.logger.info(f"Support metrics backend running on http://localhost:{port}")
    app.run(host="0.0.0.0", port=port)
