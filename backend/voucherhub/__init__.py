# Overview: Application factory; wires config, database, geolocation, blueprints and CLI.
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


CORS_HEADERS = {
    "Vary": "Origin",
    "Access-Control-Allow-Headers": "Authorization, Content-Type",
    "Access-Control-Allow-Methods": "GET,POST,PATCH,DELETE,OPTIONS",
}


def _install_geolocation(app: Flask) -> None:
    from .services.geolocation_service import GeolocationResolver, StaticGeolocationResolver

    static_label = app.config.get("GEOLOCATION_STATIC_LABEL")
    if static_label:
        app.extensions["geolocation"] = StaticGeolocationResolver(static_label)
    else:
        app.extensions["geolocation"] = GeolocationResolver.from_config(app.config)


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        # Overrides must land before the extensions build their engines
        app.config.update(test_config)

    app.logger.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())

    db.init_app(app)
    migrate.init_app(app, db)

    # Alembic autogenerate only sees models that have been imported
    from . import models  # noqa: F401

    _install_geolocation(app)

    from .routes.system import system_bp
    from .routes.vouchers import vouchers_bp
    from .routes.reports import reports_bp

    for blueprint in (system_bp, vouchers_bp, reports_bp):
        app.register_blueprint(blueprint)

    allowed_origins = frozenset(app.config.get("CORS_ALLOWED_ORIGINS", ()))

    @app.after_request
    def allow_known_origins(response):
        origin = request.headers.get("Origin")
        if origin and origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers.update(CORS_HEADERS)
        return response

    from .cli import register_commands
    register_commands(app)

    return app
