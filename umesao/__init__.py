import os
from flask import Flask
from config import Config
from umesao.extensions import db, migrate


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Ensure the local object store exists
    if app.config["STORAGE_BACKEND"] == "local":
        os.makedirs(app.config["STORAGE_FOLDER"], exist_ok=True)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Register blueprints
    from umesao.routes.cards import cards_bp
    from umesao.routes.upload import upload_bp
    from umesao.routes.search import search_bp
    from umesao.routes.pages import pages_bp

    app.register_blueprint(cards_bp)
    app.register_blueprint(upload_bp)
    app.register_blueprint(search_bp)
    app.register_blueprint(pages_bp)

    from umesao.errors import register_error_handlers
    from umesao.cli import register_commands

    register_error_handlers(app)
    register_commands(app)

    # Create tables on first run
    with app.app_context():
        from umesao.models import card, document_version, chunk  # noqa
        db.create_all()

    return app
