from flask import jsonify, request, current_app

from snipegame.api import api, require_fields
from snipegame.errors import InvalidRequest
from snipegame.services import snipes as snipe_service
from snipegame.services.scheduler import schedule_snipe_expiry


@api.route('/snipes', methods=['POST'])
def create_snipe():
    data = request.get_json(silent=True) or {}
    sniper_id, target_id, group_id = require_fields('sniper_id', 'target_id', 'group_id')
    snipe = snipe_service.create_snipe(sniper_id, target_id, group_id, photo_ref=data.get('photo_ref'))
    # Arm the expiry timer; a no-op under TESTING unless explicitly enabled
    schedule_snipe_expiry(current_app._get_current_object(), snipe.id)
    return jsonify(snipe.to_dict()), 201


@api.route('/snipes/pending', methods=['GET'])
def pending_snipes():
    target_id = request.args.get('target_id')
    if not target_id:
        raise InvalidRequest('target_id is required')
    return jsonify([s.to_dict() for s in snipe_service.get_pending_snipes_for_target(target_id)])


@api.route('/snipes/<snipe_id>', methods=['GET'])
def get_snipe(snipe_id):
    return jsonify(snipe_service.get_snipe(snipe_id).to_dict())


@api.route('/snipes/<snipe_id>/dodge', methods=['POST'])
def dodge(snipe_id):
    (target_id,) = require_fields('target_id')
    snipe = snipe_service.dodge_snipe(snipe_id, target_id)
    return jsonify(snipe.to_dict())


@api.route('/snipes/<snipe_id>/resolve', methods=['POST'])
def resolve(snipe_id):
    snipe = snipe_service.resolve_expired_snipe(snipe_id)
    return jsonify(snipe.to_dict())
