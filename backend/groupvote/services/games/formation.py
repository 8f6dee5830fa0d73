"""Group Formation: partition an eligible set into voting groups.

Planning is pure (``plan_groups``); ``form_groups`` persists the plan for
a round. Groups of one member never vote: they are created completed with
their sole member as winner.
"""

import random
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set

from flask import current_app

from groupvote import db
from groupvote.models import Group, GroupStatus, Round
from .errors import InvariantViolation, ValidationError


@dataclass
class GroupPlan:
    group_number: int
    member_ids: List[int]
    role_holder_id: Optional[int] = None

    @property
    def auto_advance(self) -> bool:
        return len(self.member_ids) == 1


@dataclass
class FormationResult:
    plans: List[GroupPlan]
    excluded: List[int] = field(default_factory=list)


def validate_group_size(group_size) -> int:
    try:
        size = int(group_size)
    except (TypeError, ValueError):
        raise ValidationError('group_size must be an integer') from None
    max_size = int(current_app.config.get('MAX_GROUP_SIZE', 10))
    if size < 1 or size > max_size:
        raise ValidationError(f'group_size must be between 1 and {max_size}')
    return size


def _validate_custom(eligible: Set[int], custom_assignment: Sequence[Iterable[int]],
                     require_full_coverage: bool) -> List[List[int]]:
    groups = []
    used: Set[int] = set()
    for number, raw in enumerate(custom_assignment, start=1):
        try:
            ids = [int(x) for x in raw]
        except (TypeError, ValueError):
            raise ValidationError(f'Group {number} has an invalid member list') from None
        if not ids:
            raise ValidationError(f'Group {number} has no members')
        for pid in ids:
            if pid not in eligible:
                raise ValidationError(f'Participant {pid} is not eligible for this round')
            if pid in used:
                raise ValidationError(f'Participant {pid} appears in multiple groups')
            used.add(pid)
        groups.append(ids)
    if require_full_coverage:
        missing = sorted(eligible - used)
        if missing:
            raise ValidationError(f'Participant {missing[0]} is not assigned to any group')
    return groups


def _assign_role_holders(plans: List[GroupPlan], overrides: Dict[int, int],
                         strict: bool, rng) -> None:
    for plan in plans:
        if plan.auto_advance:
            continue
        override = overrides.get(plan.group_number)
        if override is not None and override in plan.member_ids:
            plan.role_holder_id = override
            continue
        if override is not None and strict:
            raise ValidationError(
                f'Role holder {override} must be a member of group {plan.group_number}'
            )
        plan.role_holder_id = rng.choice(plan.member_ids)


def check_partition(plans: Sequence[GroupPlan], expected: Set[int]) -> None:
    """Raise InvariantViolation unless ``plans`` partition ``expected`` exactly."""
    seen: Set[int] = set()
    for plan in plans:
        if not plan.member_ids:
            raise InvariantViolation(f'Group {plan.group_number} was planned with no members')
        for pid in plan.member_ids:
            if pid in seen:
                raise InvariantViolation(f'Participant {pid} was placed in two groups')
            seen.add(pid)
    if seen != expected:
        stray = sorted(seen ^ expected)
        raise InvariantViolation(
            f'Group formation does not cover the eligible set (participant {stray[0]})'
        )


def plan_groups(eligible_ids: Iterable[int], group_size: int,
                custom_assignment: Optional[Sequence[Iterable[int]]] = None,
                role_holders: Optional[Dict[int, int]] = None,
                hidden_role: bool = False,
                require_full_coverage: bool = True,
                rng=None) -> FormationResult:
    rng = rng or random
    eligible = {int(x) for x in eligible_ids}
    size = validate_group_size(group_size)
    overrides = {int(k): int(v) for k, v in (role_holders or {}).items()}

    if custom_assignment:
        members = _validate_custom(eligible, custom_assignment, require_full_coverage)
        plans = [GroupPlan(n, ids) for n, ids in enumerate(members, start=1)]
    else:
        shuffled = sorted(eligible)
        rng.shuffle(shuffled)
        plans = [
            GroupPlan(n, shuffled[i:i + size])
            for n, i in enumerate(range(0, len(shuffled), size), start=1)
        ]

    if hidden_role:
        _assign_role_holders(plans, overrides, strict=bool(custom_assignment), rng=rng)

    covered = set().union(*(p.member_ids for p in plans)) if plans else set()
    expected = eligible if require_full_coverage or not custom_assignment else covered
    check_partition(plans, expected)
    return FormationResult(plans=plans, excluded=sorted(eligible - covered))


def form_groups(rnd: Round, eligible_ids: Iterable[int], group_size: int,
                custom_assignment: Optional[Sequence[Iterable[int]]] = None,
                role_holders: Optional[Dict[int, int]] = None,
                hidden_role: bool = False,
                require_full_coverage: bool = True,
                rng=None) -> FormationResult:
    """Plan and persist the groups of ``rnd``. The caller owns the transaction."""
    result = plan_groups(
        eligible_ids, group_size, custom_assignment,
        role_holders=role_holders, hidden_role=hidden_role,
        require_full_coverage=require_full_coverage, rng=rng,
    )
    for plan in result.plans:
        group = Group(round_id=rnd.id, group_number=plan.group_number, role_holder_id=plan.role_holder_id)
        group.members = plan.member_ids
        if plan.auto_advance:
            group.status = GroupStatus.COMPLETED
            group.winner_id = plan.member_ids[0]
        else:
            group.status = GroupStatus.VOTING
        db.session.add(group)
    db.session.flush()
    current_app.logger.info(
        f"[formation] game={rnd.game_id} round={rnd.round_number} groups={len(result.plans)} "
        f"auto_advanced={sum(1 for p in result.plans if p.auto_advance)} excluded={len(result.excluded)}"
    )
    return result
