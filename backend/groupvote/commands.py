import click

from groupvote import db


def register_commands(flask_app):
    """Attach the maintenance commands to ``flask``'s CLI."""

    @flask_app.cli.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from groupvote.models import RosterPlayer, User
        db.drop_all()
        db.create_all()

        admin = User(username='admin', is_admin=True)
        admin.set_password('password')
        db.session.add(admin)
        for name in ('player1', 'player2', 'player3'):
            user = User(username=name)
            user.set_password('password')
            db.session.add(user)
            db.session.flush()
            db.session.add(RosterPlayer(user_id=user.id, status='alive'))

        db.session.commit()
        click.echo('Database has been reset and seeded!')

    @flask_app.cli.command('sweep-advances')
    @click.option('--now', type=float, default=None, help='Epoch seconds to treat as the current time.')
    def sweep_advances_command(now):
        """Advances every game whose scheduled advance time has passed."""
        from groupvote.services.games.scheduler import sweep_due_advances
        advanced = sweep_due_advances(now=now)
        click.echo(f'Advanced {len(advanced)} game(s): {advanced}')
