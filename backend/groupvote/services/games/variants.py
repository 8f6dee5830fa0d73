"""Variant policies and game presets.

A single resolver serves every game: what differs between games is
captured here as data (presets) and as small callables (``VariantPolicy``)
rather than as one resolver per game.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from groupvote.models import GroupStatus
from .errors import ValidationError


PLAIN_ELIMINATION = 'plain-elimination'
HIDDEN_ROLE = 'hidden-role'

IMMUTABLE = 'immutable'
MUTABLE = 'mutable'

# What a unanimous pick means in the plain-elimination variant
WINNER_KEPT = 'kept'
WINNER_REMOVED = 'removed'


@dataclass(frozen=True)
class Verdict:
    status: str
    winner_id: Optional[int] = None
    role_holder_winner_id: Optional[int] = None


@dataclass(frozen=True)
class VariantPolicy:
    name: str
    on_unanimous: Callable[..., Verdict]
    on_failure: Callable[..., Verdict]
    early_exit: Callable[[Verdict], bool]
    advancing: Callable[..., List[int]]


def _pick_wins(group, target_id: int) -> Verdict:
    return Verdict(GroupStatus.COMPLETED, winner_id=target_id)


def _group_out(group) -> Verdict:
    return Verdict(GroupStatus.ELIMINATED)


def _plain_advancing(group, winner_meaning: str) -> List[int]:
    members = group.members
    if len(members) == 1 or winner_meaning == WINNER_KEPT:
        return [group.winner_id] if group.winner_id is not None else []
    return [m for m in members if m != group.winner_id]


def _role_holder_wins(group) -> Verdict:
    return Verdict(GroupStatus.ROLE_HOLDER_WON, role_holder_winner_id=group.role_holder_id)


def _unmask(group, target_id: int) -> Verdict:
    if target_id == group.role_holder_id:
        return Verdict(GroupStatus.COMPLETED)
    return _role_holder_wins(group)


def _hidden_advancing(group, winner_meaning: str) -> List[int]:
    return [m for m in group.members if m != group.role_holder_id]


POLICIES: Dict[str, VariantPolicy] = {
    PLAIN_ELIMINATION: VariantPolicy(
        name=PLAIN_ELIMINATION,
        on_unanimous=_pick_wins,
        on_failure=_group_out,
        early_exit=lambda verdict: False,
        advancing=_plain_advancing,
    ),
    HIDDEN_ROLE: VariantPolicy(
        name=HIDDEN_ROLE,
        on_unanimous=_unmask,
        on_failure=_role_holder_wins,
        early_exit=lambda verdict: verdict.status == GroupStatus.ROLE_HOLDER_WON,
        advancing=_hidden_advancing,
    ),
}


def get_policy(variant: str) -> VariantPolicy:
    try:
        return POLICIES[variant]
    except KeyError:
        raise ValidationError(f'Unknown game variant {variant!r}') from None


PRESETS = {
    'buddy_up': {
        'variant': PLAIN_ELIMINATION,
        'vote_policy': IMMUTABLE,
        'winner_meaning': WINNER_KEPT,
        'finalist_count': 1,
        'max_rounds': None,
        'eligibility_source': 'signups',
    },
    'the_mole': {
        'variant': HIDDEN_ROLE,
        'vote_policy': IMMUTABLE,
        'winner_meaning': WINNER_KEPT,
        'finalist_count': 1,
        'max_rounds': None,
        'eligibility_source': 'signups',
    },
    'bullied': {
        'variant': PLAIN_ELIMINATION,
        'vote_policy': MUTABLE,
        'winner_meaning': WINNER_KEPT,
        'finalist_count': 1,
        'max_rounds': 1,
        'eligibility_source': 'roster',
    },
}

SETTING_CHOICES = {
    'variant': tuple(POLICIES),
    'vote_policy': (IMMUTABLE, MUTABLE),
    'winner_meaning': (WINNER_KEPT, WINNER_REMOVED),
    'resolution_order': ('ascending', 'descending'),
    'eligibility_source': ('signups', 'roster'),
}

SETTING_KEYS = (
    'name', 'variant', 'group_size', 'vote_policy', 'allow_self_vote', 'winner_meaning',
    'finalist_count', 'max_rounds', 'resolution_order', 'eligibility_source',
)

# Settings an explicit null clears; every other key requires a value
CLEARABLE_KEYS = ('name', 'max_rounds')

_TRUE = ('true', '1', 'yes')
_FALSE = ('false', '0', 'no')


def _as_bool(value, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in _TRUE + _FALSE:
        return value.strip().lower() in _TRUE
    raise ValidationError(f'{key} must be true or false')


def game_settings(preset: Optional[str], overrides: Optional[dict] = None) -> dict:
    """Merge a preset with caller overrides, validating every choice.

    A key missing from ``overrides`` keeps the preset value; an explicit
    ``None`` clears one of ``CLEARABLE_KEYS``.
    """
    if preset is None:
        settings = {}
    elif preset in PRESETS:
        settings = dict(PRESETS[preset])
    else:
        raise ValidationError(f'Unknown preset {preset!r}')

    for key, value in (overrides or {}).items():
        if key not in SETTING_KEYS:
            raise ValidationError(f'Unknown game setting {key!r}')
        if value is None:
            if key not in CLEARABLE_KEYS:
                raise ValidationError(f'{key} cannot be null')
            settings[key] = None
            continue
        if key in SETTING_CHOICES and value not in SETTING_CHOICES[key]:
            raise ValidationError(f'{key} must be one of {", ".join(SETTING_CHOICES[key])}')
        settings[key] = value

    if 'variant' not in settings:
        raise ValidationError('A preset or a variant is required')
    for key in ('group_size', 'finalist_count', 'max_rounds'):
        if settings.get(key) is not None:
            try:
                settings[key] = int(settings[key])
            except (TypeError, ValueError):
                raise ValidationError(f'{key} must be an integer') from None
    if 'allow_self_vote' in settings:
        settings['allow_self_vote'] = _as_bool(settings['allow_self_vote'], 'allow_self_vote')
    if settings.get('finalist_count') is not None and settings['finalist_count'] < 0:
        raise ValidationError('finalist_count cannot be negative')
    if settings.get('max_rounds') is not None and settings['max_rounds'] < 1:
        raise ValidationError('max_rounds must be at least 1')
    return settings
