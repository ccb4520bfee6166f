# database/db.py
import atexit
from pathlib import Path

from flask_sqlalchemy import SQLAlchemy
from loguru import logger

db = SQLAlchemy()


def dispose_engine(app):
    with app.app_context():
        db.engine.dispose()
        logger.info("Database connections closed")


def init_db(app):
    # The default SQLite file lives in the instance folder
    instance_path = Path(app.instance_path)
    instance_path.mkdir(parents=True, exist_ok=True)

    db.init_app(app)

    with app.app_context():
        # Import models so every table is registered before create_all
        import models  # noqa: F401

        db.create_all()
        logger.info("Database ready at {}", db.engine.url.render_as_string(hide_password=True))

    # Test apps are torn down by their fixtures
    if not app.testing:
        atexit.register(dispose_engine, app)

    return db
