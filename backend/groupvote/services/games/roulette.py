"""Roulette Wheel: a group may agree to let chance pick its winner.

Once an admin deploys the wheel on a game, the members of a ``voting``
group opt in one by one. When the last member opts in, the group locks and
its votes freeze; any member may then reveal the winner, drawn at random
from the group. Every write is conditional on the state it was computed
from, so racing callers cannot both apply.
"""

import json
import random
from typing import Optional, Tuple

from flask import current_app

from groupvote import db
from groupvote.models import Game, GameStatus, Group, GroupStatus, RoundStatus
from . import supervisor
from .errors import ConflictError, NotAGroupMember, NotFoundError, ValidationError
from .transaction import atomic
from .variants import PLAIN_ELIMINATION


@atomic
def deploy_roulette(game_id: int) -> Game:
    game = supervisor.get_game(game_id)
    supervisor.require_in_progress(game)
    if game.variant != PLAIN_ELIMINATION:
        raise ValidationError('The Roulette Wheel is only available in elimination games')
    if game.roulette_deployed_at is not None:
        return game
    deployed = (
        Game.query
        .filter_by(id=game.id, status=GameStatus.IN_PROGRESS, roulette_deployed_at=None)
        .update({'roulette_deployed_at': db.func.now()}, synchronize_session='fetch')
    )
    if deployed:
        current_app.logger.info(f"[roulette-deploy] game={game.id}")
    else:
        db.session.refresh(game)
        if game.roulette_deployed_at is None:
            raise ConflictError('Game is no longer in progress')
    return game


def _member_group(group_id: int, voter_id: int) -> Tuple[Group, Game]:
    group = Group.query.filter_by(id=group_id).first()
    if not group:
        raise NotFoundError('Group not found')
    game = group.round.game
    supervisor.require_in_progress(game)
    if game.roulette_deployed_at is None:
        raise ValidationError('The Roulette Wheel has not been deployed for this game')
    if voter_id not in group.members:
        raise NotAGroupMember('You are not in this group')
    return group, game


def _require_voting(group: Group) -> None:
    if group.round.status != RoundStatus.VOTING or group.status != GroupStatus.VOTING:
        raise ValidationError('Group is not in voting phase')


@atomic
def roulette_opt(group_id: int, voter_id: int, opt_in: bool) -> Group:
    """Add or remove ``voter_id`` from the group's wheel choosers.

    The opt that completes the group locks it. Repeating an opt is a no-op.
    """
    group, game = _member_group(group_id, voter_id)
    _require_voting(group)
    opted = group.roulette_opted

    if opt_in:
        if voter_id in opted:
            return group
        opted = opted + [voter_id]
        values = {'roulette_opted_ids': json.dumps(opted)}
        if set(group.members) <= set(opted):
            values['roulette_locked_at'] = db.func.now()
    else:
        if group.roulette_locked_at is not None:
            raise ValidationError('Roulette is locked for this group, every member chose the wheel')
        if voter_id not in opted:
            return group
        values = {'roulette_opted_ids': json.dumps([m for m in opted if m != voter_id])}

    updated = (
        Group.query
        .filter(
            Group.id == group.id,
            Group.status == GroupStatus.VOTING,
            Group.roulette_locked_at.is_(None),
            Group.roulette_opted_ids == group.roulette_opted_ids,
        )
        .update(values, synchronize_session='fetch')
    )
    if not updated:
        raise ConflictError('Roulette choices changed, please try again')
    current_app.logger.info(
        f"[roulette-opt] game={game.id} group={group.id} voter={voter_id} "
        f"opt_in={opt_in} locked={'roulette_locked_at' in values}"
    )
    return group


@atomic
def roulette_reveal(group_id: int, voter_id: int, rng: Optional[random.Random] = None) -> int:
    """Draw the winner of a locked group. A completed group keeps its winner."""
    group, game = _member_group(group_id, voter_id)
    if group.status == GroupStatus.COMPLETED and group.winner_id is not None:
        return group.winner_id
    _require_voting(group)
    if group.roulette_locked_at is None:
        raise ValidationError('Roulette is not locked yet, every member must choose the wheel first')

    winner_id = (rng or random.SystemRandom()).choice(group.members)
    updated = (
        Group.query
        .filter_by(id=group.id, status=GroupStatus.VOTING)
        .update({'status': GroupStatus.COMPLETED, 'winner_id': winner_id}, synchronize_session='fetch')
    )
    if not updated:
        db.session.refresh(group)
        if group.status == GroupStatus.COMPLETED and group.winner_id is not None:
            return group.winner_id
        raise ConflictError('Group was resolved by another request')
    current_app.logger.info(f"[roulette-reveal] game={game.id} group={group.id} winner={winner_id}")
    return winner_id
