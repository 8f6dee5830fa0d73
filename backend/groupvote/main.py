from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from groupvote import db
from groupvote.auth import is_admin
from groupvote.models import User, Game, GameStatus, Signup

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'status': 'ok'})


@main.route('/login', methods=['POST', 'OPTIONS'])
def login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(username=data.get('username')).first()
    if user and user.check_password(data.get('password') or ''):
        login_user(user)
        return jsonify({"success": True, "user": user.to_dict()})
    return jsonify({"success": False, "message": "Invalid credentials"}), 401


@main.route('/register', methods=['POST', 'OPTIONS'])
def register():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''
    if not username or not password:
        return jsonify({"success": False, "message": "Username and password are required"}), 400
    if User.query.filter_by(username=username).first():
        return jsonify({"success": False, "message": "Username already exists"}), 400

    new_user = User(username=username)
    new_user.set_password(password)
    db.session.add(new_user)
    db.session.commit()
    login_user(new_user)
    return jsonify({"success": True, "user": new_user.to_dict()}), 201


@main.route('/check_login', methods=['GET'])
@login_required
def check_login():
    payload = current_user.to_dict()
    payload['is_admin'] = is_admin(current_user)
    return jsonify({"success": True, "user": payload})


@main.route('/logout', methods=['POST', 'OPTIONS'])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})


@main.route('/games/active')
@login_required
def get_active_games():
    # Games the current user signed up for that have not been settled yet
    games = (
        Game.query.join(Signup, Signup.game_id == Game.id)
        .filter(Signup.user_id == current_user.id, Game.status != GameStatus.SETTLED)
        .order_by(Game.id)
        .all()
    )
    return jsonify([game.to_dict() for game in games])
