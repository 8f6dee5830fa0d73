"""Vote Ledger: one active vote per voter per group.

The game's ``vote_policy`` selects how a vote is written:

- ``immutable``: the first vote stands. The (group, voter) unique
  constraint makes the insert itself the check, so two racing casts
  cannot both succeed.
- ``mutable``: a later cast overwrites the earlier one and a vote may be
  cleared, until the round is resolved or the group locks on the
  Roulette Wheel.
"""

from typing import Optional, Tuple

from flask import current_app

from groupvote import db
from groupvote.models import Game, GameStatus, Group, GroupStatus, Round, RoundStatus, Vote
from .errors import NotAGroupMember, NotFoundError, ValidationError
from .transaction import atomic, flush_unique
from .variants import IMMUTABLE, MUTABLE


def _open_group(group_id: int, voter_id: int) -> Tuple[Group, Game]:
    group = Group.query.filter_by(id=group_id).first()
    if not group:
        raise NotFoundError('Group not found')
    rnd: Round = group.round
    game: Game = rnd.game
    if game.status != GameStatus.IN_PROGRESS:
        raise ValidationError('Game is not in progress')
    if rnd.status != RoundStatus.VOTING:
        raise ValidationError('Round is not in voting phase')
    if voter_id not in group.members:
        raise NotAGroupMember('You are not in this group')
    if group.status != GroupStatus.VOTING:
        raise ValidationError('Group is not in voting phase')
    if group.roulette_locked_at is not None:
        raise ValidationError('Votes are locked, this group chose the Roulette Wheel')
    return group, game


def _check_target(game: Game, group: Group, voter_id: int, target_id: int) -> None:
    if target_id not in group.members:
        raise ValidationError('You can only vote for someone in your group')
    if target_id == voter_id and not game.allow_self_vote:
        raise ValidationError('You cannot vote for yourself')


def _require_mutable(game: Game) -> None:
    if game.vote_policy != MUTABLE:
        raise ValidationError('Votes are final in this game')


def _existing(group_id: int, voter_id: int) -> Optional[Vote]:
    return Vote.query.filter_by(group_id=group_id, voter_id=voter_id).first()


def _insert_once(group: Group, voter_id: int, target_id: int) -> Vote:
    vote = Vote(group_id=group.id, voter_id=voter_id, target_id=target_id)
    db.session.add(vote)
    flush_unique('You have already voted')
    return vote


def _overwrite(group: Group, voter_id: int, target_id: int) -> Vote:
    updated = (
        Vote.query
        .filter_by(group_id=group.id, voter_id=voter_id)
        .update({'target_id': target_id, 'reason': None}, synchronize_session='fetch')
    )
    if updated:
        return _existing(group.id, voter_id)
    vote = Vote(group_id=group.id, voter_id=voter_id, target_id=target_id)
    db.session.add(vote)
    flush_unique('Vote conflict, please try again')
    return vote


_WRITERS = {
    IMMUTABLE: _insert_once,
    MUTABLE: _overwrite,
}


@atomic
def cast_vote(group_id: int, voter_id: int, target_id: int) -> Vote:
    group, game = _open_group(group_id, voter_id)
    _check_target(game, group, voter_id, target_id)
    try:
        write = _WRITERS[game.vote_policy]
    except KeyError:
        raise ValidationError(f'Unknown vote policy {game.vote_policy!r}') from None
    vote = write(group, voter_id, target_id)
    current_app.logger.info(f"[vote] game={game.id} group={group.id} voter={voter_id} target={target_id}")
    return vote


@atomic
def change_vote(group_id: int, voter_id: int, target_id: int) -> Vote:
    group, game = _open_group(group_id, voter_id)
    _require_mutable(game)
    _check_target(game, group, voter_id, target_id)
    if not _existing(group.id, voter_id):
        raise NotFoundError('Vote not found')
    vote = _overwrite(group, voter_id, target_id)
    current_app.logger.info(f"[vote-change] game={game.id} group={group.id} voter={voter_id} target={target_id}")
    return vote


@atomic
def clear_vote(group_id: int, voter_id: int) -> bool:
    group, game = _open_group(group_id, voter_id)
    _require_mutable(game)
    removed = Vote.query.filter_by(group_id=group.id, voter_id=voter_id).delete(synchronize_session='fetch')
    current_app.logger.info(f"[vote-clear] game={game.id} group={group.id} voter={voter_id} removed={removed}")
    return bool(removed)


@atomic
def set_vote_reason(group_id: int, voter_id: int, reason: Optional[str]) -> Vote:
    text = (reason or '').strip()
    limit = int(current_app.config.get('MAX_VOTE_REASON_LENGTH', 10000))
    if len(reason or '') > limit:
        raise ValidationError(f'Reason must be at most {limit} characters')
    group, _ = _open_group(group_id, voter_id)
    vote = _existing(group.id, voter_id)
    if not vote:
        raise NotFoundError('Vote not found')
    vote.reason = text or None
    db.session.add(vote)
    return vote
