from flask import jsonify, request

from snipegame.api import api, require_fields
from snipegame.errors import InvalidRequest
from snipegame.services import accusations
from snipegame.services import groups as group_service


@api.route('/groups', methods=['POST'])
def create_group():
    name, user_id = require_fields('name', 'user_id')
    group = group_service.create_group(name, user_id)
    return jsonify(group.to_dict()), 201


@api.route('/groups/join', methods=['POST'])
def join_group():
    invite_code, user_id = require_fields('invite_code', 'user_id')
    group = group_service.join_group(invite_code, user_id)
    return jsonify(group.to_dict())


@api.route('/groups/<group_id>', methods=['GET'])
def get_group(group_id):
    return jsonify(group_service.get_group(group_id).to_dict())


@api.route('/groups/<group_id>/leave', methods=['POST'])
def leave_group(group_id):
    (user_id,) = require_fields('user_id')
    group = group_service.leave_group(group_id, user_id)
    return jsonify(group.to_dict())


@api.route('/groups/<group_id>/accuse', methods=['POST'])
def accuse(group_id):
    accuser_id, accused_id = require_fields('accuser_id', 'accused_id')
    group = accusations.accuse_member(group_id, accuser_id, accused_id)
    return jsonify(group.to_dict()), 201


@api.route('/groups/<group_id>/vote', methods=['POST'])
def vote(group_id):
    data = request.get_json(silent=True) or {}
    (voter_id,) = require_fields('voter_id')
    if not isinstance(data.get('vote'), bool):
        raise InvalidRequest('vote must be true or false')
    result = accusations.vote_on_accusation(group_id, voter_id, data['vote'])
    return jsonify({
        'resolved': result.resolved,
        'penalized': result.penalized,
        'accused_id': result.accused_id,
        'group': result.group.to_dict(),
    })
