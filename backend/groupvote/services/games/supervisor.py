"""Game Supervisor: the only writer of ``Game.status``.

Transitions are one-way and every one of them is a conditional update
keyed on the expected prior status, so a duplicate trigger becomes a
no-op instead of a blind overwrite.
"""

import json
from dataclasses import dataclass, field
from typing import Iterable, List

from flask import current_app

from groupvote import db
from groupvote.models import Game, GameStatus
from .errors import ConflictError, NotFoundError, ValidationError
from .transaction import atomic
from .variants import game_settings


@dataclass
class GameOutcome:
    game_id: int
    status: str
    winners: List[int] = field(default_factory=list)

    def to_dict(self):
        return {'game_id': self.game_id, 'status': self.status, 'winners': self.winners}


def get_game(game_id: int) -> Game:
    game = Game.query.filter_by(id=game_id).first()
    if not game:
        raise NotFoundError('Game not found')
    return game


def require_in_progress(game: Game) -> None:
    if game.status != GameStatus.IN_PROGRESS:
        raise ValidationError('Game is not in progress')


def _transition(game: Game, from_statuses: Iterable[str], to_status: str, **values) -> bool:
    values['status'] = to_status
    updated = (
        Game.query
        .filter(Game.id == game.id, Game.status.in_(tuple(from_statuses)))
        .update(values, synchronize_session='fetch')
    )
    if updated:
        current_app.logger.info(f"[game-status] game={game.id} -> {to_status}")
    else:
        current_app.logger.info(f"[game-status-skip] game={game.id} wanted {to_status}, status changed underneath")
    return bool(updated)


@atomic
def create_game(preset=None, **overrides) -> Game:
    settings = game_settings(preset, overrides)
    settings.setdefault('group_size', int(current_app.config.get('DEFAULT_GROUP_SIZE', 3)))
    game = Game(preset=preset, status=GameStatus.SIGNUP, current_round=1, **settings)
    db.session.add(game)
    db.session.flush()
    current_app.logger.info(f"[create] game={game.id} preset={preset} variant={game.variant}")
    return game


def begin(game: Game) -> None:
    """signup -> in_progress. The caller owns the transaction."""
    if game.status != GameStatus.SIGNUP:
        raise ValidationError('Game is not open for signup')
    if not _transition(game, [GameStatus.SIGNUP], GameStatus.IN_PROGRESS):
        raise ConflictError('Game was started by another request')


def finish(game: Game, winners: Iterable[int]) -> None:
    """in_progress -> completed, recording the finalists."""
    if not _transition(game, [GameStatus.IN_PROGRESS], GameStatus.COMPLETED,
                       winner_ids=json.dumps(sorted(winners)), advance_at=None):
        raise ConflictError('Game is no longer in progress')


def declare_role_holder_winner(game: Game, role_holder_id: int) -> bool:
    """in_progress -> role_holder_won. False when another caller got there first."""
    return _transition(game, [GameStatus.IN_PROGRESS], GameStatus.ROLE_HOLDER_WON,
                       role_holder_winner_id=role_holder_id, advance_at=None)


@atomic
def settle_game(game_id: int) -> Game:
    game = get_game(game_id)
    if game.status == GameStatus.SETTLED:
        return game
    settleable = (GameStatus.IN_PROGRESS, GameStatus.COMPLETED, GameStatus.ROLE_HOLDER_WON)
    if game.status not in settleable:
        raise ValidationError('Game must be in progress or ended before settlement')
    if not _transition(game, settleable, GameStatus.SETTLED, advance_at=None):
        raise ConflictError('Game status changed during settlement')
    return game


def game_outcome(game_id: int) -> GameOutcome:
    game = get_game(game_id)
    if game.status == GameStatus.ROLE_HOLDER_WON:
        winners = [game.role_holder_winner_id] if game.role_holder_winner_id is not None else []
    elif game.status == GameStatus.SETTLED and game.role_holder_winner_id is not None:
        winners = [game.role_holder_winner_id]
    elif game.status in (GameStatus.COMPLETED, GameStatus.SETTLED):
        winners = game.winners
    else:
        winners = []
    return GameOutcome(game_id=game.id, status=game.status, winners=winners)
