# backend/settlement/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_object=None, *, catalog=None, processor=None, identity=None) -> Flask:
    """
    Application factory.

    catalog, processor and identity are the external collaborators; pass them
    in to override the defaults (in-memory catalog, Stripe adapter, static
    token identity).
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .container import EXTENSION_KEY, build_services
    from .processor import StripeProcessor
    from .services.catalog import InMemoryCatalog
    from .services.identity import StaticTokenIdentity

    app.extensions[EXTENSION_KEY] = build_services(
        app,
        catalog=catalog if catalog is not None else InMemoryCatalog(),
        processor=processor if processor is not None else StripeProcessor(app.config["STRIPE_SECRET_KEY"]),
        identity=identity if identity is not None else StaticTokenIdentity.from_config(
            app.config["STATIC_IDENTITY_TOKENS"]
        ),
    )

    # Register blueprints
    from .routes.system import system_bp
    from .routes.checkout import checkout_bp
    from .routes.orders import orders_bp, admin_orders_bp
    from .routes.webhooks import webhooks_bp
    from .routes.library import library_bp, admin_entitlements_bp
    from .routes.membership import membership_bp, admin_plans_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(admin_orders_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(library_bp)
    app.register_blueprint(admin_entitlements_bp)
    app.register_blueprint(membership_bp)
    app.register_blueprint(admin_plans_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin.rstrip("/") == app.config["FRONTEND_URL"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
