# backend/fintab/__init__.py
import logging

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate


def create_app(test_config=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.businesses import businesses_bp
    from .routes.products import products_bp
    from .routes.customers import customers_bp
    from .routes.checkout import checkout_bp
    from .routes.sales import sales_bp
    from .routes.approvals import approvals_bp
    from .routes.bank import bank_bp
    from .routes.expenses import expenses_bp
    from .routes.notifications import notifications_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(businesses_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(approvals_bp)
    app.register_blueprint(bank_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(notifications_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        """
        Incident boundary for anything a route did not translate.

        The failed transaction is rolled back, the incident is kept with the
        caller's checkout state, and the client gets an incident id it can
        quote when choosing restart or resume.
        """
        if isinstance(e, HTTPException):
            return e

        from .services import incident_service
        from .models import CheckoutSession

        app.logger.exception("Unhandled error on %s %s", request.method, request.path)

        user = getattr(g, "current_user", None)
        business_id = getattr(g, "business_id", None)
        db.session.rollback()

        context = None
        if user is not None and business_id is not None:
            session = db.session.query(CheckoutSession).filter_by(
                business_id=business_id,
                operator_user_id=user.id,
            ).first()
            if session is not None:
                context = {"checkout_session": session.to_dict()}

        incident = incident_service.record_incident(
            e,
            business_id=business_id,
            user_id=user.id if user is not None else None,
            path=request.path,
            context=context,
        )
        return jsonify({
            "error": "Unexpected error",
            "incident_id": incident.id,
            "recovery": ["restart", "resume"],
        }), 500

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
