"""Flask extensions shared by the models and the booking services."""
from __future__ import annotations

from flask_sqlalchemy import SQLAlchemy

# Bound to the app in create_app().
db = SQLAlchemy()
