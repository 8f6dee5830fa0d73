import time
from typing import List, Optional, Set, Tuple

from flask import current_app

from groupvote import db, socketio
from groupvote.models import Game, GameStatus
from groupvote.socketio_events import broadcast_state
from .errors import GameError
from .progressor import advance_round


_scheduled_advance_keys: Set[Tuple[int, int]] = set()


def schedule_advance(app, game_id: int, delay: int) -> Optional[float]:
    """Advance the game's current round once ``delay`` seconds have passed.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Sets game.advance_at so clients can render countdowns
    - Ensures a single timer per (game_id, round)
    - When the timer fires, advances only if the game is still in progress
      on the same round with the same advance_at
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return None

    with app.app_context():
        game = Game.query.filter_by(id=game_id).first()
        if not game or game.status != GameStatus.IN_PROGRESS:
            return None

        round_idx = int(game.current_round or 0)
        key = (game.id, round_idx)
        if key in _scheduled_advance_keys:
            app.logger.info(f"[timer-skip] game={game.id} round={round_idx} already scheduled")
            return game.advance_at

        _scheduled_advance_keys.add(key)
        deadline = time.time() + delay
        game.advance_at = deadline
        db.session.add(game)
        db.session.commit()
        app.logger.info(f"[timer-set] game={game.id} round={round_idx} delay={delay}s deadline={deadline}")

    def _worker(gid: int, expected_round: int, expected_deadline: float, wait: int):
        time.sleep(wait)
        with app.app_context():
            _scheduled_advance_keys.discard((gid, expected_round))
            g = Game.query.filter_by(id=gid).first()
            if not g:
                return
            app.logger.info(
                f"[timer-fire] game={gid} expected_round={expected_round} actual_round={g.current_round} status={g.status}"
            )
            if g.status != GameStatus.IN_PROGRESS or int(g.current_round or 0) != expected_round \
                    or g.advance_at != expected_deadline:
                app.logger.info(f"[timer-abort] game={gid} mismatch status/round/deadline")
                return
            try:
                advance_round(gid)
            except GameError as exc:
                app.logger.info(f"[timer-abort] game={gid} {exc.message}")
                return
            except Exception:
                app.logger.exception(f"[timer-error] game={gid} advance failed")
                return
            broadcast_state(gid)

    if app.config.get('TESTING'):
        _worker(game_id, round_idx, deadline, delay)
    else:
        socketio.start_background_task(_worker, game_id, round_idx, deadline, delay)
    return deadline


def sweep_due_advances(now: Optional[float] = None) -> List[int]:
    """Advance every in-progress game whose advance_at has passed. Cron entry point."""
    now = time.time() if now is None else now
    due = (
        Game.query
        .filter(Game.status == GameStatus.IN_PROGRESS, Game.advance_at.isnot(None), Game.advance_at <= now)
        .order_by(Game.id)
        .all()
    )
    advanced = []
    for game in due:
        game_id = game.id
        try:
            advance_round(game_id)
        except GameError as exc:
            current_app.logger.info(f"[sweep-skip] game={game_id} {exc.message}")
            continue
        current_app.logger.info(f"[sweep] game={game_id} advanced")
        broadcast_state(game_id)
        advanced.append(game_id)
    return advanced
