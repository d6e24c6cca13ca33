from flask import Blueprint

bp = Blueprint("live", __name__)

from app.routes.live import routes  # noqa: F401, E402
