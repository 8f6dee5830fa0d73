import random

import pytest
from sqlalchemy.orm import Session

from groupvote import db
from groupvote.models import Game, Group, GroupStatus, Round
from groupvote.services.games import ledger, roulette
from groupvote.services.games.errors import ConflictError, NotAGroupMember, ValidationError
from groupvote.services.games.resolver import resolve_round
from groupvote.services.games.roulette import deploy_roulette, roulette_opt, roulette_reveal


def _groups(game_id):
    rnd = Round.query.filter_by(game_id=game_id, round_number=1).one()
    return {g.group_number: g for g in Group.query.filter_by(round_id=rnd.id).all()}


def _wheel_game(started_game):
    game_id, ids, _ = started_game(players=6, groups=[[0, 1, 2], [3, 4, 5]], vote_policy='mutable')
    deploy_roulette(game_id)
    return game_id, ids, _groups(game_id)[1].id


def _everyone_opts_in(group_id, members):
    for member in members:
        roulette_opt(group_id, member, True)


def test_deploy_is_idempotent(started_game):
    game_id, _, _ = started_game()
    first = deploy_roulette(game_id).roulette_deployed_at
    assert first is not None
    assert deploy_roulette(game_id).roulette_deployed_at == first


def test_deploy_rules(started_game, new_game):
    waiting, _ = new_game()
    with pytest.raises(ValidationError):
        deploy_roulette(waiting)
    mole_id, _, _ = started_game('the_mole', groups=[[0, 1], [2, 3]])
    with pytest.raises(ValidationError):
        deploy_roulette(mole_id)


def test_opt_requires_a_deployed_wheel(started_game):
    game_id, ids, _ = started_game(groups=[[0, 1], [2, 3]])
    with pytest.raises(ValidationError) as exc:
        roulette_opt(_groups(game_id)[1].id, ids[0], True)
    assert exc.value.message == 'The Roulette Wheel has not been deployed for this game'


def test_outsider_cannot_opt(started_game):
    _, ids, group_id = _wheel_game(started_game)
    with pytest.raises(NotAGroupMember):
        roulette_opt(group_id, ids[3], True)


def test_opt_in_and_out(started_game):
    _, ids, group_id = _wheel_game(started_game)
    assert roulette_opt(group_id, ids[0], True).roulette_opted == [ids[0]]
    assert roulette_opt(group_id, ids[0], True).roulette_opted == [ids[0]]
    assert roulette_opt(group_id, ids[1], True).roulette_opted == [ids[0], ids[1]]
    assert roulette_opt(group_id, ids[0], False).roulette_opted == [ids[1]]
    assert roulette_opt(group_id, ids[2], False).roulette_opted == [ids[1]]
    assert db.session.get(Group, group_id).roulette_locked_at is None


def test_last_opt_in_locks_the_group(started_game):
    _, ids, group_id = _wheel_game(started_game)
    ledger.cast_vote(group_id, ids[0], ids[1])
    _everyone_opts_in(group_id, ids[0:3])

    group = db.session.get(Group, group_id)
    assert group.roulette_locked_at is not None
    assert group.status == GroupStatus.VOTING
    with pytest.raises(ValidationError):
        roulette_opt(group_id, ids[1], False)
    with pytest.raises(ValidationError) as exc:
        ledger.cast_vote(group_id, ids[0], ids[2])
    assert exc.value.message == 'Votes are locked, this group chose the Roulette Wheel'
    with pytest.raises(ValidationError):
        ledger.clear_vote(group_id, ids[0])


def test_reveal_needs_a_locked_group(started_game):
    _, ids, group_id = _wheel_game(started_game)
    roulette_opt(group_id, ids[0], True)
    with pytest.raises(ValidationError):
        roulette_reveal(group_id, ids[0])


def test_reveal_picks_a_member_once(started_game):
    _, ids, group_id = _wheel_game(started_game)
    _everyone_opts_in(group_id, ids[0:3])

    winner = roulette_reveal(group_id, ids[1], rng=random.Random(3))
    assert winner in ids[0:3]
    group = db.session.get(Group, group_id)
    assert group.status == GroupStatus.COMPLETED
    assert group.winner_id == winner
    assert roulette_reveal(group_id, ids[2]) == winner
    with pytest.raises(ValidationError):
        roulette_opt(group_id, ids[0], False)


def test_revealed_group_advances_its_winner(started_game):
    game_id, ids, group_id = _wheel_game(started_game)
    _everyone_opts_in(group_id, ids[0:3])
    winner = roulette_reveal(group_id, ids[0], rng=random.Random(1))
    second = _groups(game_id)[2]
    for voter in second.members:
        ledger.cast_vote(second.id, voter, ids[4])

    outcome = resolve_round(second.round_id)
    assert outcome.winners == [winner, ids[4]]
    assert outcome.advancing == sorted([winner, ids[4]])


def test_opt_loses_to_a_concurrent_change(started_game, monkeypatch):
    _, ids, group_id = _wheel_game(started_game)
    roulette_opt(group_id, ids[0], True)
    require_voting = roulette._require_voting

    def teammate_opts_in_meanwhile(group):
        require_voting(group)
        with Session(db.engine) as other:
            other.query(Group).filter_by(id=group.id).update({'roulette_opted_ids': f'[{ids[0]}, {ids[2]}]'})
            other.commit()

    monkeypatch.setattr(roulette, '_require_voting', teammate_opts_in_meanwhile)
    with pytest.raises(ConflictError):
        roulette_opt(group_id, ids[1], True)
    group = db.session.get(Group, group_id)
    assert group.roulette_opted == [ids[0], ids[2]]
    assert group.roulette_locked_at is None


def test_racing_reveal_returns_the_recorded_winner(started_game, monkeypatch):
    _, ids, group_id = _wheel_game(started_game)
    _everyone_opts_in(group_id, ids[0:3])

    class FirstRevealWins(random.Random):
        def choice(self, seq):
            with Session(db.engine) as other:
                other.query(Group).filter_by(id=group_id).update(
                    {'status': GroupStatus.COMPLETED, 'winner_id': ids[2]})
                other.commit()
            return ids[0]

    assert roulette_reveal(group_id, ids[0], rng=FirstRevealWins()) == ids[2]
    assert db.session.get(Group, group_id).winner_id == ids[2]


def test_wheel_state_is_reported(started_game):
    game_id, ids, group_id = _wheel_game(started_game)
    roulette_opt(group_id, ids[2], True)
    assert db.session.get(Game, game_id).to_dict()['roulette_deployed'] is True
    payload = db.session.get(Group, group_id).to_dict()
    assert payload['roulette_opted_ids'] == [ids[2]]
    assert payload['roulette_locked_at'] is None
