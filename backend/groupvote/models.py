from groupvote import db, bcrypt
from flask_login import UserMixin
import json


class GameStatus:
    SIGNUP = 'signup'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    SETTLED = 'settled'
    ROLE_HOLDER_WON = 'role_holder_won'

    TERMINAL = (COMPLETED, SETTLED, ROLE_HOLDER_WON)


class RoundStatus:
    VOTING = 'voting'
    COMPLETED = 'completed'


class GroupStatus:
    VOTING = 'voting'
    COMPLETED = 'completed'
    ELIMINATED = 'eliminated'
    ROLE_HOLDER_WON = 'role_holder_won'

    TERMINAL = (COMPLETED, ELIMINATED, ROLE_HOLDER_WON)


def _load_ids(raw):
    try:
        return [int(x) for x in json.loads(raw)] if raw else []
    except (TypeError, ValueError):
        return []


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'is_admin': self.is_admin,
        }


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=True)
    preset = db.Column(db.String(32), nullable=True)
    status = db.Column(db.String(32), default=GameStatus.SIGNUP, nullable=False)  # signup, in_progress, completed, settled, role_holder_won
    current_round = db.Column(db.Integer, default=1, nullable=False)
    # Policy parameters consumed by the engine
    variant = db.Column(db.String(32), nullable=False)  # plain-elimination, hidden-role
    group_size = db.Column(db.Integer, nullable=False, default=3)
    vote_policy = db.Column(db.String(16), nullable=False, default='immutable')  # immutable, mutable
    allow_self_vote = db.Column(db.Boolean, nullable=False, default=True)
    winner_meaning = db.Column(db.String(16), nullable=False, default='kept')  # kept, removed
    finalist_count = db.Column(db.Integer, nullable=False, default=1)
    max_rounds = db.Column(db.Integer, nullable=True)
    resolution_order = db.Column(db.String(16), nullable=False, default='ascending')  # ascending, descending
    eligibility_source = db.Column(db.String(16), nullable=False, default='signups')  # signups, roster
    # Terminal results
    winner_ids = db.Column(db.Text, nullable=True)  # JSON-encoded list of participant ids
    role_holder_winner_id = db.Column(db.Integer, nullable=True)
    advance_at = db.Column(db.Float, nullable=True)  # epoch seconds of a scheduled advance
    roulette_deployed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now(), onupdate=db.func.now())

    rounds = db.relationship('Round', back_populates='game', order_by='Round.round_number')

    @property
    def winners(self):
        return _load_ids(self.winner_ids)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'preset': self.preset,
            'status': self.status,
            'current_round': self.current_round,
            'variant': self.variant,
            'group_size': self.group_size,
            'vote_policy': self.vote_policy,
            'allow_self_vote': self.allow_self_vote,
            'winner_meaning': self.winner_meaning,
            'finalist_count': self.finalist_count,
            'max_rounds': self.max_rounds,
            'resolution_order': self.resolution_order,
            'eligibility_source': self.eligibility_source,
            'winners': self.winners,
            'role_holder_winner_id': self.role_holder_winner_id,
            'advance_at': self.advance_at,
            'roulette_deployed': self.roulette_deployed_at is not None,
        }


class Round(db.Model):
    __tablename__ = 'round'
    __table_args__ = (db.UniqueConstraint('game_id', 'round_number', name='uq_round_game_number'),)
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    round_number = db.Column(db.Integer, nullable=False)
    group_size = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), default=RoundStatus.VOTING, nullable=False)  # voting, completed
    created_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    game = db.relationship('Game', back_populates='rounds')
    groups = db.relationship('Group', back_populates='round', order_by='Group.group_number')

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'round_number': self.round_number,
            'group_size': self.group_size,
            'status': self.status,
        }


class Group(db.Model):
    # "group" is a reserved word in SQL
    __tablename__ = 'voting_group'
    __table_args__ = (db.UniqueConstraint('round_id', 'group_number', name='uq_group_round_number'),)
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=False, index=True)
    group_number = db.Column(db.Integer, nullable=False)
    member_ids = db.Column(db.Text, nullable=False)  # JSON-encoded list of participant ids
    status = db.Column(db.String(32), default=GroupStatus.VOTING, nullable=False)  # voting, completed, eliminated, role_holder_won
    winner_id = db.Column(db.Integer, nullable=True)
    role_holder_id = db.Column(db.Integer, nullable=True)  # hidden-role variant only; never shown to players
    roulette_opted_ids = db.Column(db.Text, nullable=True)  # JSON-encoded list of members who chose the wheel
    roulette_locked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now(), onupdate=db.func.now())

    round = db.relationship('Round', back_populates='groups')
    votes = db.relationship('Vote', back_populates='group', lazy='dynamic')

    @property
    def members(self):
        return _load_ids(self.member_ids)

    @members.setter
    def members(self, ids):
        self.member_ids = json.dumps([int(x) for x in ids])

    @property
    def roulette_opted(self):
        return _load_ids(self.roulette_opted_ids)

    def to_dict(self, privileged=False, viewer_id=None):
        votes = self.votes.order_by(Vote.id).all()
        payload = {
            'id': self.id,
            'round_id': self.round_id,
            'group_number': self.group_number,
            'members': self.members,
            'status': self.status,
            'winner_id': self.winner_id,
            'vote_count': len(votes),
            'total_members': len(self.members),
            'roulette_opted_ids': self.roulette_opted,
            'roulette_locked_at': self.roulette_locked_at.isoformat() if self.roulette_locked_at else None,
        }
        if privileged:
            payload['role_holder_id'] = self.role_holder_id
        if privileged or viewer_id in self.members:
            payload['votes'] = [v.to_dict() for v in votes]
        else:
            # Who voted is public; whom they voted for is only shown inside the group
            payload['votes'] = [{'voter_id': v.voter_id, 'target_id': None} for v in votes]
        return payload


class Vote(db.Model):
    __tablename__ = 'vote'
    __table_args__ = (db.UniqueConstraint('group_id', 'voter_id', name='uq_vote_group_voter'),)
    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey('voting_group.id'), nullable=False, index=True)
    voter_id = db.Column(db.Integer, nullable=False)
    target_id = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now(), onupdate=db.func.now())

    group = db.relationship('Group', back_populates='votes')

    def to_dict(self):
        return {
            'id': self.id,
            'group_id': self.group_id,
            'voter_id': self.voter_id,
            'target_id': self.target_id,
            'reason': self.reason,
        }


class Signup(db.Model):
    __tablename__ = 'signup'
    __table_args__ = (db.UniqueConstraint('game_id', 'user_id', name='uq_signup_game_user'),)
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    signed_up_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now())

    def to_dict(self):
        return {'game_id': self.game_id, 'user_id': self.user_id}


class RosterPlayer(db.Model):
    """Alive/eliminated status kept by the tournament roster, outside this engine."""
    __tablename__ = 'roster_player'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, unique=True)
    status = db.Column(db.String(16), default='alive', nullable=False)  # alive, eliminated
