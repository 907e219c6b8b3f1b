# Overview: Shared Flask-SQLAlchemy and Flask-Migrate instances.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()
