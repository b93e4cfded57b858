# Overview: Shared extension singletons, bound to the app in create_app().

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

# One session per app context; every workflow writes through db.session
db = SQLAlchemy()

# Revisions live in backend/migrations (render_as_batch for SQLite ALTERs)
migrate = Migrate()
