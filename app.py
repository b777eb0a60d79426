import json
import logging
import os
from typing import Optional

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException, InternalServerError

from api import bp as api_bp
from data_models import db
from fixtures import load_fixtures_command
from settings import Settings
from tag_cache import init_cache
from validation import ValidationFailed


# -----------------------------
# App factory
# -----------------------------
def create_app(settings: Optional[Settings] = None, cache_client=None) -> Flask:
    """
    Build the Book API application.

    `settings` defaults to values read from the environment / `.env`;
    `cache_client` replaces the redis client built from `settings.redis_url`.
    """
    settings = settings or Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = Flask(__name__)
    app.secret_key = settings.secret_key
    app.config["SETTINGS"] = settings
    app.config["DEBUG"] = settings.debug
    app.config["SQLALCHEMY_DATABASE_URI"] = settings.database_url
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.json.ensure_ascii = False

    if settings.is_sqlite_file():
        db_path = settings.database_url[len("sqlite:///"):]
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)

    db.init_app(app)

    init_cache(app, cache_client)
    app.register_blueprint(api_bp)
    app.cli.add_command(load_fixtures_command)
    register_error_handlers(app)

    with app.app_context():
        db.create_all()

    app.logger.info("Book API ready (database: %s)", settings.database_url)
    return app


# -----------------------------
# Error handlers (JSON)
# -----------------------------
def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ValidationFailed)
    def handle_validation(e: ValidationFailed):
        return app.response_class(
            json.dumps(e.to_dict(), ensure_ascii=False),
            status=400,
            mimetype="application/json",
        )

    @app.errorhandler(HTTPException)
    def handle_http(e: HTTPException):
        response = jsonify({"status": e.code, "message": e.description})
        response.status_code = e.code
        if e.code == 401:
            response.headers["WWW-Authenticate"] = "Bearer"
        return response

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        db.session.rollback()
        app.logger.exception("Unhandled exception")
        message = InternalServerError.description
        if app.config["SETTINGS"].debug:
            message = str(e)
        response = jsonify({"status": 500, "message": message})
        response.status_code = 500
        return response


if __name__ == "__main__":
    # You can change the port if 5000 is taken
    create_app().run(host="0.0.0.0", port=5000)
