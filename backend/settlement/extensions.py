# Overview: Shared extension instances; bound to the app in create_app().

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

# Orders, entitlements, memberships and the event outbox share this database
db = SQLAlchemy()
migrate = Migrate()
