from flask import Blueprint

bp = Blueprint("football", __name__)

from app.routes.football import routes  # noqa: F401, E402
