"""Tournament Progressor: from one resolved round to the next, or to the end.

Owns ``Round.status`` and the derivation of the next round's eligible set.
A round is only ever closed (``voting -> completed``) by ``advance_round``,
and only once every group in it is terminal, so a game never holds two
voting rounds at once.
"""

import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from flask import current_app

from groupvote import db
from groupvote.models import Game, GameStatus, GroupStatus, Round, RoundStatus
from . import supervisor
from .eligibility import get_source
from .errors import ConflictError, NotFoundError, ValidationError
from .formation import FormationResult, form_groups
from .resolver import round_outcome
from .transaction import atomic, flush_unique
from .variants import HIDDEN_ROLE


@dataclass
class NextRoundOutcome:
    game_id: int
    status: str
    round_id: Optional[int] = None
    round_number: Optional[int] = None
    groups: List[dict] = field(default_factory=list)
    winners: List[int] = field(default_factory=list)
    excluded: List[int] = field(default_factory=list)

    def to_dict(self):
        return {
            'game_id': self.game_id,
            'status': self.status,
            'round_id': self.round_id,
            'round_number': self.round_number,
            'groups': self.groups,
            'winners': self.winners,
            'excluded': self.excluded,
        }


def current_round(game: Game) -> Round:
    rnd = Round.query.filter_by(game_id=game.id, round_number=game.current_round).first()
    if not rnd:
        raise NotFoundError(f'Round {game.current_round} not found')
    return rnd


def _open_round(game: Game, round_number: int, eligible, group_size: Optional[int],
                custom_assignment, role_holders, allow_partial: bool, rng) -> NextRoundOutcome:
    size = group_size if group_size is not None else game.group_size
    rnd = Round(game_id=game.id, round_number=round_number, group_size=size, status=RoundStatus.VOTING)
    db.session.add(rnd)
    flush_unique(f'Round {round_number} already exists')
    result: FormationResult = form_groups(
        rnd, eligible, size, custom_assignment,
        role_holders=role_holders,
        hidden_role=game.variant == HIDDEN_ROLE,
        require_full_coverage=not allow_partial,
        rng=rng,
    )
    current_app.logger.info(f"[round-open] game={game.id} round={round_number} players={len(eligible)}")
    return NextRoundOutcome(
        game_id=game.id,
        status=GameStatus.IN_PROGRESS,
        round_id=rnd.id,
        round_number=round_number,
        groups=[
            {'group_number': p.group_number, 'members': p.member_ids, 'auto_advanced': p.auto_advance}
            for p in result.plans
        ],
        excluded=result.excluded,
    )


@atomic
def start_tournament(game_id: int, group_size: Optional[int] = None,
                     custom_assignment: Optional[Sequence[Sequence[int]]] = None,
                     role_holders: Optional[Dict[int, int]] = None,
                     allow_partial: bool = False, rng=None) -> NextRoundOutcome:
    """Open round 1 from the Eligibility Source and put the game in progress."""
    game = supervisor.get_game(game_id)
    supervisor.begin(game)
    eligible = get_source(game.eligibility_source).eligible_participants(game.id)
    if not eligible:
        raise ValidationError('No eligible players found')
    game.current_round = 1
    return _open_round(game, 1, eligible, group_size, custom_assignment, role_holders, allow_partial, rng or random)


def _stops(game: Game, round_number: int, advancing: List[int]) -> bool:
    if len(advancing) <= game.finalist_count:
        return True
    return game.max_rounds is not None and round_number >= game.max_rounds


def _close(rnd: Round) -> None:
    closed = (
        Round.query
        .filter_by(id=rnd.id, status=RoundStatus.VOTING)
        .update({'status': RoundStatus.COMPLETED, 'completed_at': db.func.now()}, synchronize_session='fetch')
    )
    if not closed:
        raise ConflictError('Round was already advanced')


@atomic
def advance_round(game_id: int, group_size: Optional[int] = None,
                  custom_assignment: Optional[Sequence[Sequence[int]]] = None,
                  role_holders: Optional[Dict[int, int]] = None,
                  allow_partial: bool = False, rng=None) -> NextRoundOutcome:
    game = supervisor.get_game(game_id)
    supervisor.require_in_progress(game)
    rnd = current_round(game)
    if rnd.status != RoundStatus.VOTING:
        raise ConflictError('Round was already advanced')
    pending = [g.group_number for g in rnd.groups if g.status not in GroupStatus.TERMINAL]
    if pending:
        raise ConflictError(f'Round {rnd.round_number} is not fully resolved (group {pending[0]} still voting)')

    advancing = round_outcome(rnd).advancing
    _close(rnd)

    if _stops(game, rnd.round_number, advancing):
        supervisor.finish(game, advancing)
        current_app.logger.info(f"[finish] game={game.id} round={rnd.round_number} winners={advancing}")
        return NextRoundOutcome(game_id=game.id, status=GameStatus.COMPLETED, winners=advancing)

    next_number = rnd.round_number + 1
    bumped = (
        Game.query
        .filter_by(id=game.id, current_round=rnd.round_number)
        .update({'current_round': next_number, 'advance_at': None}, synchronize_session='fetch')
    )
    if not bumped:
        raise ConflictError('Round was already advanced')
    current_app.logger.info(f"[next_round] game={game.id} advance round {rnd.round_number} -> {next_number}")
    return _open_round(game, next_number, advancing, group_size, custom_assignment,
                       role_holders, allow_partial, rng or random)
