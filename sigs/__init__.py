from __future__ import annotations

import click
from flask import Flask, jsonify

from sigs.admin import admin_bp
from sigs.cartera import cartera_bp
from sigs.core.auth import auth_bp
from sigs.core.config import Config, storage_root
from sigs.core.context import load_actor_context
from sigs.core.extensions import db, login_manager, migrate
from sigs.core.models import User, seed_demo_data
from sigs.core.storage import LocalStorage
from sigs.documentos import documentos_bp
from sigs.siniestros import siniestros_bp


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    app.extensions["sigs_storage"] = LocalStorage(storage_root(app))

    app.before_request(load_actor_context)

    app.register_blueprint(auth_bp)
    app.register_blueprint(cartera_bp)
    app.register_blueprint(siniestros_bp)
    app.register_blueprint(documentos_bp)
    app.register_blueprint(admin_bp)

    register_cli(app)
    register_error_handlers(app)
    return app


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(403)
    def forbidden(_error):
        return jsonify({"success": False, "error": "Acceso denegado", "errorKind": "permission_denied"}), 403

    @app.errorhandler(404)
    def not_found(_error):
        return jsonify({"success": False, "error": "Recurso no encontrado", "errorKind": "not_found"}), 404


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed demo users, catalogs and a small portfolio."""
        if reset:
            db.drop_all()
            db.create_all()
        if not User.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing users found.")

    @app.cli.command("grants-expire")
    def grants_expire() -> None:
        """Mark lapsed edit grants on rejected policies as expired."""
        from sigs.cartera.services import expire_edit_grants

        expired = expire_edit_grants()
        click.echo(f"Edit grants expired: {expired}")


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"success": False, "error": "Sesion requerida", "errorKind": "unauthenticated"}), 401
