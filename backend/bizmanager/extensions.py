# Overview: Flask extension instances for database, migrations and the business store.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

STORE_EXTENSION_KEY = "business_store"


def get_business_store():
    """Return the BusinessStore bound to the current Flask app."""
    return current_app.extensions[STORE_EXTENSION_KEY]
