"""Flask extension instances shared by the app factory, the SQL store and the blueprints."""
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

# Bound later in create_app; the JSON API blueprints are exempted from CSRF there.
csrf = CSRFProtect()
db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
