# questcraft_cms/blueprints/__init__.py
from flask import Flask

from questcraft_cms.blueprints.meta.routes import meta_bp
from questcraft_cms.blueprints.auth.routes import auth_bp
from questcraft_cms.blueprints.dashboard.routes import dashboard_bp
from questcraft_cms.blueprints.api.routes import api_bp


def register_blueprints(app: Flask) -> None:
    app.register_blueprint(meta_bp)                          # /health
    app.register_blueprint(auth_bp)                          # /auth/...
    app.register_blueprint(dashboard_bp)                     # Seiten
    app.register_blueprint(api_bp, url_prefix="/api")
