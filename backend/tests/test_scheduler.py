import time

from groupvote import db
from groupvote.models import Game, GameStatus, Group, Round
from groupvote.services.games import ledger, scheduler
from groupvote.services.games.resolver import resolve_round
from groupvote.services.games.scheduler import schedule_advance, sweep_due_advances


def _resolved_round_one(started_game):
    """A buddy_up game of four whose first round has two winners."""
    game_id, ids, _ = started_game(groups=[[0, 1], [2, 3]], group_size=2)
    rnd = Round.query.filter_by(game_id=game_id, round_number=1).one()
    for group in Group.query.filter_by(round_id=rnd.id).all():
        for voter in group.members:
            ledger.cast_vote(group.id, voter, group.members[0])
    resolve_round(rnd.id)
    return game_id


def _set_advance_at(game_id, when):
    game = db.session.get(Game, game_id)
    game.advance_at = when
    db.session.commit()


def test_sweep_advances_due_games(started_game):
    due = _resolved_round_one(started_game)
    later = _resolved_round_one(started_game)
    _set_advance_at(due, time.time() - 5)
    _set_advance_at(later, time.time() + 600)

    assert sweep_due_advances() == [due]
    assert db.session.get(Game, due).current_round == 2
    assert db.session.get(Game, due).advance_at is None
    assert db.session.get(Game, later).current_round == 1


def test_sweep_skips_unresolved_rounds(started_game):
    game_id, _, _ = started_game(groups=[[0, 1], [2, 3]])
    _set_advance_at(game_id, 1.0)
    assert sweep_due_advances(now=10.0) == []
    assert db.session.get(Game, game_id).current_round == 1


def test_scheduler_is_off_in_tests(flask_app, started_game):
    game_id = _resolved_round_one(started_game)
    assert schedule_advance(flask_app, game_id, 60) is None
    assert db.session.get(Game, game_id).advance_at is None


def test_scheduled_advance_fires(flask_app, started_game, monkeypatch):
    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    slept = []
    monkeypatch.setattr(scheduler.time, 'sleep', slept.append)
    game_id = _resolved_round_one(started_game)

    deadline = schedule_advance(flask_app, game_id, 60)
    assert deadline is not None
    assert slept == [60]

    db.session.expire_all()
    game = db.session.get(Game, game_id)
    assert game.status == GameStatus.IN_PROGRESS
    assert game.current_round == 2
    assert game.advance_at is None


def test_scheduled_advance_does_nothing_once_the_game_ended(flask_app, started_game):
    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    game_id, _, _ = started_game(groups=[[0, 1], [2, 3]])
    from groupvote.services.games.supervisor import settle_game
    settle_game(game_id)
    assert schedule_advance(flask_app, game_id, 60) is None
