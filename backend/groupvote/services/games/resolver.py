"""Round Resolver: the group-consensus algorithm.

For every group of a round still in ``voting``:

1. fewer votes than members -> the variant's failure outcome;
2. votes split across targets -> the variant's failure outcome;
3. unanimous -> the variant's success outcome.

Every group transition is a conditional update on ``status == 'voting'``,
so a second resolver racing the first does nothing for groups already
decided. When the variant's early-exit predicate fires (the hidden role
holder wins), the game ends and the remaining groups are left untouched;
this makes evaluation order observable, so groups are always visited in a
deterministic order.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from flask import current_app

from groupvote import db
from groupvote.models import Game, Group, GroupStatus, Round, Vote
from . import supervisor
from .errors import NotFoundError, ValidationError
from .transaction import atomic
from .variants import VariantPolicy, Verdict, get_policy


@dataclass
class GroupOutcome:
    group_id: int
    group_number: int
    status: str
    winner_id: Optional[int]
    advancing: List[int] = field(default_factory=list)

    def to_dict(self):
        return {
            'group_id': self.group_id,
            'group_number': self.group_number,
            'status': self.status,
            'winner_id': self.winner_id,
            'advancing': self.advancing,
        }


@dataclass
class RoundOutcome:
    round_id: int
    round_number: int
    game_status: str
    groups: List[GroupOutcome]
    role_holder_winner_id: Optional[int] = None

    @property
    def resolved(self) -> bool:
        return all(g.status in GroupStatus.TERMINAL for g in self.groups)

    @property
    def winners(self) -> List[int]:
        return [g.winner_id for g in self.groups
                if g.status == GroupStatus.COMPLETED and g.winner_id is not None]

    @property
    def eliminated(self) -> List[int]:
        return [g.group_id for g in self.groups if g.status == GroupStatus.ELIMINATED]

    @property
    def advancing(self) -> List[int]:
        return sorted(pid for g in self.groups for pid in g.advancing)

    def to_dict(self):
        return {
            'round_id': self.round_id,
            'round_number': self.round_number,
            'game_status': self.game_status,
            'resolved': self.resolved,
            'groups': [g.to_dict() for g in self.groups],
            'winners': self.winners,
            'eliminated': self.eliminated,
            'advancing': self.advancing,
            'role_holder_winner_id': self.role_holder_winner_id,
        }


def judge_group(group: Group, votes: Sequence[Vote], policy: VariantPolicy) -> Verdict:
    """Decide one group from the votes cast so far. Touches no state."""
    if len(votes) < len(group.members):
        return policy.on_failure(group)
    targets = {v.target_id for v in votes}
    if len(targets) != 1:
        return policy.on_failure(group)
    return policy.on_unanimous(group, targets.pop())


def ordered_groups(rnd: Round, game: Game, order: Optional[Sequence[int]] = None) -> List[Group]:
    """Groups in evaluation order: ``order`` first, then the game's configured order."""
    groups = sorted(rnd.groups, key=lambda g: g.group_number,
                    reverse=game.resolution_order == 'descending')
    if not order:
        return groups
    by_number = {g.group_number: g for g in groups}
    picked = []
    for number in order:
        if isinstance(number, bool):
            raise ValidationError(f'Group number {number!r} must be an integer')
        try:
            number = int(number)
        except (TypeError, ValueError):
            raise ValidationError(f'Group number {number!r} must be an integer') from None
        if number not in by_number:
            raise ValidationError(f'Group {number} does not exist in this round')
        if by_number[number] in picked:
            raise ValidationError(f'Group {number} is listed twice in the resolution order')
        picked.append(by_number[number])
    return picked + [g for g in groups if g not in picked]


def round_outcome(rnd: Round) -> RoundOutcome:
    """Outcome as persisted; safe to call at any time."""
    game = rnd.game
    policy = get_policy(game.variant)
    outcomes = []
    role_holder_winner_id = None
    for group in sorted(rnd.groups, key=lambda g: g.group_number):
        advancing = []
        if group.status == GroupStatus.COMPLETED:
            advancing = sorted(policy.advancing(group, game.winner_meaning))
        elif group.status == GroupStatus.ROLE_HOLDER_WON:
            role_holder_winner_id = group.role_holder_id
        outcomes.append(GroupOutcome(group.id, group.group_number, group.status, group.winner_id, advancing))
    return RoundOutcome(rnd.id, rnd.round_number, game.status, outcomes, role_holder_winner_id)


def _decide(group: Group, verdict: Verdict) -> bool:
    updated = (
        Group.query
        .filter_by(id=group.id, status=GroupStatus.VOTING)
        .update({'status': verdict.status, 'winner_id': verdict.winner_id}, synchronize_session='fetch')
    )
    return bool(updated)


def get_round(round_id: int) -> Round:
    rnd = Round.query.filter_by(id=round_id).first()
    if not rnd:
        raise NotFoundError('Round not found')
    return rnd


@atomic
def resolve_round(round_id: int, order: Optional[Sequence[int]] = None) -> RoundOutcome:
    rnd = get_round(round_id)
    game = rnd.game
    policy = get_policy(game.variant)
    groups = ordered_groups(rnd, game, order)
    if not groups:
        raise ValidationError('No groups found for this round')

    already_ended = any(g.status == GroupStatus.ROLE_HOLDER_WON for g in groups)
    if already_ended or all(g.status in GroupStatus.TERMINAL for g in groups):
        current_app.logger.info(f"[resolve-skip] game={game.id} round={rnd.round_number} already resolved")
        return round_outcome(rnd)
    supervisor.require_in_progress(game)

    for group in groups:
        if group.status != GroupStatus.VOTING:
            continue
        verdict = judge_group(group, group.votes.all(), policy)
        if not _decide(group, verdict):
            current_app.logger.info(f"[resolve-skip] game={game.id} group={group.id} decided by another caller")
            db.session.refresh(group)
            if policy.early_exit(Verdict(group.status)):
                db.session.refresh(game)
                break
            continue
        current_app.logger.info(
            f"[resolve] game={game.id} round={rnd.round_number} group={group.group_number} "
            f"status={verdict.status} winner={verdict.winner_id}"
        )
        if policy.early_exit(verdict):
            supervisor.declare_role_holder_winner(game, verdict.role_holder_winner_id)
            current_app.logger.info(
                f"[resolve-stop] game={game.id} round={rnd.round_number} role_holder={verdict.role_holder_winner_id}"
            )
            break

    return round_outcome(rnd)
