from flask import jsonify, request

from snipegame.api import api, require_fields, catalog
from snipegame.services import groups as group_service
from snipegame.services import ledger, powerups, purchases


@api.route('/users', methods=['POST'])
def create_user():
    data = request.get_json(silent=True) or {}
    (name,) = require_fields('name')
    user = group_service.create_user(name, email=data.get('email'))
    return jsonify(user.to_dict()), 201


@api.route('/users/<user_id>', methods=['GET'])
def get_user(user_id):
    return jsonify(group_service.get_user(user_id).to_dict())


@api.route('/users/<user_id>/inventory', methods=['GET'])
def get_inventory(user_id):
    return jsonify(purchases.get_user_inventory(user_id))


@api.route('/users/<user_id>/powerups', methods=['GET'])
def get_powerups(user_id):
    return jsonify(powerups.get_active_powerups(user_id))


@api.route('/users/<user_id>/groups', methods=['GET'])
def get_user_groups(user_id):
    return jsonify([g.to_dict() for g in group_service.get_user_groups(user_id)])


@api.route('/users/<user_id>/ledger', methods=['GET'])
def get_ledger(user_id):
    try:
        limit = int(request.args.get('limit', 50))
    except (TypeError, ValueError):
        limit = 50
    limit = max(1, min(limit, 500))
    return jsonify([e.to_dict() for e in ledger.get_point_history(user_id, limit=limit)])


@api.route('/users/<user_id>/purchase', methods=['POST'])
def purchase(user_id):
    (item_id,) = require_fields('item_id')
    user = purchases.purchase_item(user_id, item_id, catalog())
    return jsonify({'success': True, 'user': user.to_dict()}), 201


@api.route('/users/<user_id>/use', methods=['POST'])
def use(user_id):
    (item_id,) = require_fields('item_id')
    user = purchases.use_item(user_id, item_id, catalog())
    return jsonify({'success': True, 'user': user.to_dict()})


@api.route('/users/<user_id>/logo/reset', methods=['POST'])
def reset_logo(user_id):
    user = purchases.reset_logo(user_id)
    return jsonify({'success': True, 'active_logo_id': user.active_logo_id})


@api.route('/catalog', methods=['GET'])
def list_catalog():
    return jsonify([item.to_dict() for item in catalog().items()])
