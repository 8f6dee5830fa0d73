from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user, login_required
from groupvote import db
from groupvote.auth import admin_required, is_admin
from groupvote.models import GameStatus, Group, GroupStatus, Round, Signup, Vote
from groupvote.services.games import ledger
from groupvote.services.games.eligibility import signup
from groupvote.services.games.errors import GameError, NotFoundError, ValidationError
from groupvote.services.games.progressor import advance_round, current_round, start_tournament
from groupvote.services.games.resolver import resolve_round
from groupvote.services.games.roulette import deploy_roulette, roulette_opt, roulette_reveal
from groupvote.services.games.scheduler import schedule_advance
from groupvote.services.games.supervisor import create_game, game_outcome, get_game, settle_game
from groupvote.socketio_events import broadcast_state


games = Blueprint('games', __name__)


@games.errorhandler(GameError)
def handle_game_error(exc):
    db.session.rollback()
    return jsonify({'error': exc.message}), exc.status_code


def _body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _as_int(value, name):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be an integer') from None


def _formation_args(data):
    """Parse group_size, custom_groups, role_holders and allow_partial from a request body.

    custom_groups may be a list of id lists, or of objects with ``members``
    and an optional ``role_holder_id``; groups are numbered in list order.
    """
    group_size = data.get('group_size')
    if group_size is not None:
        group_size = _as_int(group_size, 'group_size')

    raw_holders = data.get('role_holders') or {}
    if not isinstance(raw_holders, dict):
        raise ValidationError('role_holders must map group numbers to member ids')
    role_holders = {}
    for number, member_id in raw_holders.items():
        role_holders[_as_int(number, 'group number')] = _as_int(member_id, 'role holder')

    custom = None
    raw_groups = data.get('custom_groups')
    if raw_groups:
        if not isinstance(raw_groups, list):
            raise ValidationError('Invalid custom_groups format')
        custom = []
        for number, entry in enumerate(raw_groups, start=1):
            if isinstance(entry, dict):
                members = entry.get('members')
                if entry.get('role_holder_id') is not None:
                    role_holders[number] = _as_int(entry['role_holder_id'], 'role holder')
            else:
                members = entry
            if not isinstance(members, list):
                raise ValidationError('Invalid custom_groups format')
            custom.append([_as_int(m, 'member id') for m in members])

    return {
        'group_size': group_size,
        'custom_assignment': custom,
        'role_holders': role_holders,
        'allow_partial': bool(data.get('allow_partial')),
    }


def _round_in_game(game_id: int, round_id: int) -> Round:
    rnd = Round.query.filter_by(id=round_id).first()
    if not rnd:
        raise NotFoundError('Round not found')
    if rnd.game_id != game_id:
        raise ValidationError('Round does not belong to this game')
    return rnd


def _group_in_game(game_id: int, group_id) -> Group:
    group = Group.query.filter_by(id=_as_int(group_id, 'group_id')).first()
    if not group or group.round.game_id != game_id:
        raise NotFoundError('Group not found')
    return group


@games.route('/create', methods=['POST'])
@admin_required
def create():
    data = _body()
    settings = data.get('settings') or {}
    if not isinstance(settings, dict):
        raise ValidationError('settings must be an object')
    settings = dict(settings)
    if data.get('name'):
        settings['name'] = data['name']
    game = create_game(data.get('preset'), **settings)
    return jsonify(game.to_dict()), 201


@games.route('/<int:game_id>', methods=['GET'])
def get_game_state(game_id):
    game = get_game(game_id)
    payload = game.to_dict()
    rnd = Round.query.filter_by(game_id=game.id, round_number=game.current_round).first()
    payload['round'] = rnd.to_dict() if rnd else None
    payload['signup_count'] = Signup.query.filter_by(game_id=game.id).count()
    return jsonify(payload)


@games.route('/<int:game_id>/signup', methods=['POST'])
@login_required
def signup_for_game(game_id):
    entry = signup(game_id, current_user.id)
    broadcast_state(game_id)
    return jsonify({'message': 'Signed up', 'signup': entry.to_dict()}), 201


@games.route('/<int:game_id>/signups', methods=['GET'])
def list_signups(game_id):
    get_game(game_id)
    signups = Signup.query.filter_by(game_id=game_id).order_by(Signup.signed_up_at, Signup.id).all()
    return jsonify([s.to_dict() for s in signups])


@games.route('/<int:game_id>/start', methods=['POST'])
@admin_required
def start(game_id):
    data = _body()
    outcome = start_tournament(game_id, **_formation_args(data))
    broadcast_state(game_id)
    return jsonify(outcome.to_dict())


@games.route('/<int:game_id>/my-group', methods=['GET'])
@login_required
def my_group(game_id):
    game = get_game(game_id)
    rnd = current_round(game)
    mine = next((g for g in rnd.groups if current_user.id in g.members), None)
    if not mine:
        return jsonify({'error': 'You are not in a group this round'}), 404
    payload = mine.to_dict(privileged=is_admin(current_user), viewer_id=current_user.id)
    vote = Vote.query.filter_by(group_id=mine.id, voter_id=current_user.id).first()
    payload['my_vote'] = vote.to_dict() if vote else None
    payload['round'] = rnd.to_dict()
    payload['you_are_role_holder'] = mine.role_holder_id is not None and mine.role_holder_id == current_user.id
    payload['role_holder_revealed'] = mine.role_holder_id if mine.status in GroupStatus.TERMINAL else None
    payload['roulette_deployed'] = game.roulette_deployed_at is not None
    return jsonify(payload)


@games.route('/<int:game_id>/vote', methods=['POST'])
@login_required
def vote(game_id):
    data = _body()
    group = _group_in_game(game_id, data.get('group_id'))
    if 'target_id' in data and data['target_id'] is None:
        ledger.clear_vote(group.id, current_user.id)
        broadcast_state(game_id)
        return jsonify({'message': 'Vote cleared', 'target_id': None})
    target_id = _as_int(data.get('target_id'), 'target_id')
    recorded = ledger.cast_vote(group.id, current_user.id, target_id)
    broadcast_state(game_id)
    return jsonify({'message': 'Vote submitted', 'vote': recorded.to_dict()}), 201


@games.route('/<int:game_id>/vote/reason', methods=['POST'])
@login_required
def vote_reason(game_id):
    data = _body()
    group = _group_in_game(game_id, data.get('group_id'))
    reason = data.get('reason')
    if reason is not None and not isinstance(reason, str):
        raise ValidationError('reason must be text')
    recorded = ledger.set_vote_reason(group.id, current_user.id, reason)
    return jsonify({'vote': recorded.to_dict()})


@games.route('/<int:game_id>/rounds/<int:round_id>/groups', methods=['GET'])
def round_groups(game_id, round_id):
    rnd = _round_in_game(game_id, round_id)
    privileged = is_admin(current_user)
    return jsonify([g.to_dict(privileged=privileged) for g in rnd.groups])


@games.route('/<int:game_id>/rounds/<int:round_id>/resolve', methods=['POST'])
@admin_required
def resolve(game_id, round_id):
    data = _body()
    _round_in_game(game_id, round_id)
    delay = data.get('advance_in_seconds')
    if delay is not None:
        delay = _as_int(delay, 'advance_in_seconds')
        allowed = current_app.config.get('ALLOWED_ADVANCE_DELAYS', [])
        if delay not in allowed:
            raise ValidationError(f'advance_in_seconds must be one of {", ".join(str(d) for d in allowed)}')
    order = data.get('order')
    if order is not None and not isinstance(order, list):
        raise ValidationError('order must be a list of group numbers')

    outcome = resolve_round(round_id, order=order)
    payload = outcome.to_dict()
    if delay is not None and outcome.resolved and outcome.game_status == GameStatus.IN_PROGRESS:
        payload['advance_at'] = schedule_advance(current_app._get_current_object(), game_id, delay)
    broadcast_state(game_id)
    return jsonify(payload)


@games.route('/<int:game_id>/advance', methods=['POST'])
@admin_required
def advance(game_id):
    data = _body()
    outcome = advance_round(game_id, **_formation_args(data))
    broadcast_state(game_id)
    return jsonify(outcome.to_dict())


@games.route('/<int:game_id>/outcome', methods=['GET'])
def outcome(game_id):
    return jsonify(game_outcome(game_id).to_dict())


@games.route('/<int:game_id>/progress', methods=['GET'])
@admin_required
def progress(game_id):
    game = get_game(game_id)
    signups = Signup.query.filter_by(game_id=game.id).order_by(Signup.id).all()
    rounds = []
    for rnd in Round.query.filter_by(game_id=game.id).order_by(Round.round_number).all():
        entry = rnd.to_dict()
        entry['groups'] = [g.to_dict(privileged=True) for g in rnd.groups]
        rounds.append(entry)
    return jsonify({
        'game': game.to_dict(),
        'signups': [s.to_dict() for s in signups],
        'rounds': rounds,
    })


@games.route('/<int:game_id>/settle', methods=['POST'])
@admin_required
def settle(game_id):
    game = settle_game(game_id)
    broadcast_state(game_id)
    return jsonify(game.to_dict())


@games.route('/<int:game_id>/roulette/deploy', methods=['POST'])
@admin_required
def deploy_wheel(game_id):
    game = deploy_roulette(game_id)
    broadcast_state(game_id)
    return jsonify(game.to_dict())


@games.route('/<int:game_id>/roulette/opt', methods=['POST'])
@login_required
def roulette_choice(game_id):
    data = _body()
    group = _group_in_game(game_id, data.get('group_id'))
    opt_in = data.get('opt_in')
    if not isinstance(opt_in, bool):
        raise ValidationError('opt_in must be true or false')
    group = roulette_opt(group.id, current_user.id, opt_in)
    broadcast_state(game_id)
    return jsonify({
        'group_id': group.id,
        'roulette_opted_ids': group.roulette_opted,
        'roulette_locked_at': group.roulette_locked_at.isoformat() if group.roulette_locked_at else None,
    })


@games.route('/<int:game_id>/roulette/reveal', methods=['POST'])
@login_required
def roulette_spin(game_id):
    data = _body()
    group = _group_in_game(game_id, data.get('group_id'))
    winner_id = roulette_reveal(group.id, current_user.id)
    broadcast_state(game_id)
    return jsonify({'group_id': group.id, 'winner_id': winner_id})
