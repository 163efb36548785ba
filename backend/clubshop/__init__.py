# backend/clubshop/__init__.py
from flask import Flask, request, jsonify
from werkzeug.exceptions import RequestEntityTooLarge

from .config import Config
from .extensions import store, sessions, notifier
from .storage import StoreCorruptionError


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # Module loggers live under "clubshop.*", which is app.logger's namespace
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    store.init_app(app)
    sessions.init_app(app)
    notifier.init_app(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.merch import merch_bp
    from .routes.orders import orders_bp
    from .routes.admin import admin_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(merch_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(admin_bp)

    @app.errorhandler(RequestEntityTooLarge)
    def request_too_large(_error):
        return jsonify({"error": "Request body is too large"}), 413

    @app.errorhandler(StoreCorruptionError)
    def store_unreadable(error):
        app.logger.error("Refusing request, stored data is unreadable: %s", error)
        return jsonify({"error": "Stored data is unreadable; an operator must repair the data files"}), 500

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
