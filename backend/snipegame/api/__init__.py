from flask import Blueprint, jsonify, request, current_app

from snipegame.errors import EngineError, InvalidRequest

api = Blueprint('api', __name__)


@api.errorhandler(EngineError)
def handle_engine_error(err: EngineError):
    current_app.logger.info(f"[api-error] {request.method} {request.path} -> {err.code}: {err.message}")
    return jsonify(err.to_dict()), err.status


def require_fields(*names):
    """Return the JSON body's values for ``names``, or raise InvalidRequest naming the missing ones."""
    data = request.get_json(silent=True) or {}
    missing = [n for n in names if data.get(n) in (None, '')]
    if missing:
        raise InvalidRequest(f"Missing required field(s): {', '.join(missing)}")
    return [data[n] for n in names]


def catalog():
    return current_app.extensions['catalog']


from snipegame.api import users, groups, snipes  # noqa: E402,F401
