import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from flask import Flask, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from marketplace.core.cache import Cache, build_cache
from marketplace.core.config import Config
from marketplace.core.dependencies import DependencyContainer, get_config
from marketplace.core.exceptions import BaseAPIException, InternalServerError
from marketplace.db import Database, translate_db_error
from marketplace.repositories.order_repository import OrderRepository
from marketplace.repositories.shipping_repository import ShippingRepository
from marketplace.routes import orders_bp, shipping_bp
from marketplace.services.order_service import OrderService
from marketplace.services.shipping_service import ShippingService
from marketplace.utils.timeouts import Deadline

logger = logging.getLogger(__name__)


def _build_container(config: Config, database: Database, cache: Cache) -> DependencyContainer:
    container = DependencyContainer()
    container.register_singleton(Config, config)
    container.register_singleton(Database, database)
    container.register_singleton(Cache, cache)

    container.register_factory(OrderRepository, lambda: OrderRepository(database))
    container.register_factory(ShippingRepository, lambda: ShippingRepository(database))
    container.register_factory(
        OrderService,
        lambda: OrderService(
            database,
            container.get(OrderRepository),
            cache,
            config.orders,
            config.cache.default_ttl_seconds,
        ),
    )
    container.register_factory(
        ShippingService,
        lambda: ShippingService(container.get(ShippingRepository), config.shipping),
    )
    return container


def create_app(
    config: Optional[Config] = None,
    database: Optional[Database] = None,
    cache: Optional[Cache] = None,
) -> Flask:
    """
    Application factory.

    Tests pass their own config, database and cache; production builds all
    three from the environment. Each app gets its own dependency container.
    """
    config = config or get_config()

    logging.basicConfig(
        level=getattr(logging, config.app.log_level.upper(), logging.INFO),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )

    database = database or Database(config.database)
    cache = cache or build_cache(config.cache)

    app = Flask(__name__)
    app.config["DEBUG"] = config.app.debug
    app.extensions["container"] = _build_container(config, database, cache)

    # ------------------------------------------------------------------ #
    # Blueprints                                                           #
    # ------------------------------------------------------------------ #
    app.register_blueprint(orders_bp,   url_prefix="/api/orders")
    app.register_blueprint(shipping_bp, url_prefix="/api/shipping")

    # ------------------------------------------------------------------ #
    # Per-request context: correlation id and time budget                  #
    # ------------------------------------------------------------------ #
    @app.before_request
    def start_request():
        g.request_id = request.headers.get("X-Request-Id") or uuid4().hex[:8]
        g.deadline = Deadline(config.api.request_timeout_seconds)

    @app.after_request
    def finish_request(response):
        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers["X-Request-Id"] = request_id
        logger.info(f"[{request_id}] {request.method} {request.path} -> {response.status_code}")
        return response

    # ------------------------------------------------------------------ #
    # Error handlers: consistent JSON error envelope                       #
    # ------------------------------------------------------------------ #
    def render_api_error(e: BaseAPIException):
        request_id = getattr(g, "request_id", None)
        if e.status_code >= 500:
            logger.error(f"[{request_id}] {e.error_code}: {e.internal_message}")
        else:
            logger.warning(f"[{request_id}] {e.error_code}: {e.message}")

        include_debug = config.is_development and e.status_code >= 500
        body = e.to_dict(include_debug)
        if request_id:
            body["request_id"] = request_id
        return jsonify(body), e.status_code

    @app.errorhandler(BaseAPIException)
    def api_error(e):
        return render_api_error(e)

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({
            "success": False,
            "message": e.description,
            "error": {
                "code": e.name.upper().replace(" ", "_"),
                "message": e.description,
                "details": {},
            },
            "request_id": getattr(g, "request_id", None),
        }), e.code

    @app.errorhandler(SQLAlchemyError)
    def db_error(e):
        return render_api_error(translate_db_error(e, f"{request.method} {request.path}", write=False))

    @app.errorhandler(Exception)
    def internal_error(e):
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return render_api_error(InternalServerError(f"{type(e).__name__}: {e}"))

    # ------------------------------------------------------------------ #
    # Health check                                                         #
    # ------------------------------------------------------------------ #
    @app.get("/health")
    def health():
        """Liveness + readiness probe. Returns 503 if DB is unreachable."""
        body = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": config.environment,
        }
        if database.ping():
            return jsonify({"status": "ok", "database": "reachable", **body}), 200
        return jsonify({"status": "error", "database": "unreachable", **body}), 503

    return app


if __name__ == "__main__":
    settings = get_config()
    application = create_app(settings)
    application.run(debug=settings.app.debug, host=settings.app.host, port=settings.app.port)
