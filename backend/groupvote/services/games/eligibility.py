"""Eligibility Source adapters.

The engine reads who may enter round 1 and never writes it back.
"""

from typing import Set

from flask import current_app

from groupvote import db
from groupvote.models import Game, GameStatus, RosterPlayer, Signup
from .errors import NotFoundError, ValidationError
from .transaction import atomic, flush_unique


class EligibilitySource:
    name = ''

    def eligible_participants(self, game_id: int) -> Set[int]:
        raise NotImplementedError


class SignupEligibility(EligibilitySource):
    """Everyone who signed up for the game."""
    name = 'signups'

    def eligible_participants(self, game_id: int) -> Set[int]:
        return {s.user_id for s in Signup.query.filter_by(game_id=game_id).all()}


class RosterEligibility(EligibilitySource):
    """Players still alive in the tournament roster."""
    name = 'roster'

    def eligible_participants(self, game_id: int) -> Set[int]:
        return {p.user_id for p in RosterPlayer.query.filter_by(status='alive').all()}


SOURCES = {cls.name: cls for cls in (SignupEligibility, RosterEligibility)}


def get_source(name: str) -> EligibilitySource:
    try:
        return SOURCES[name]()
    except KeyError:
        raise ValidationError(f'Unknown eligibility source {name!r}') from None


@atomic
def signup(game_id: int, user_id: int) -> Signup:
    game = Game.query.filter_by(id=game_id).first()
    if not game:
        raise NotFoundError('Game not found')
    if game.status != GameStatus.SIGNUP:
        raise ValidationError('Signups are closed for this game')
    entry = Signup(game_id=game_id, user_id=user_id)
    db.session.add(entry)
    flush_unique('You have already signed up')
    current_app.logger.info(f"[signup] game={game_id} user={user_id}")
    return entry
