"""create user, game, round, voting_group, vote, signup and roster_player tables

Revision ID: 5c2a9e7d1b40
Revises:
Create Date: 2026-10-17 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2a9e7d1b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'game',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=True),
        sa.Column('preset', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('current_round', sa.Integer(), nullable=False),
        sa.Column('variant', sa.String(length=32), nullable=False),
        sa.Column('group_size', sa.Integer(), nullable=False),
        sa.Column('vote_policy', sa.String(length=16), nullable=False),
        sa.Column('allow_self_vote', sa.Boolean(), nullable=False),
        sa.Column('winner_meaning', sa.String(length=16), nullable=False),
        sa.Column('finalist_count', sa.Integer(), nullable=False),
        sa.Column('max_rounds', sa.Integer(), nullable=True),
        sa.Column('resolution_order', sa.String(length=16), nullable=False),
        sa.Column('eligibility_source', sa.String(length=16), nullable=False),
        sa.Column('winner_ids', sa.Text(), nullable=True),
        sa.Column('role_holder_winner_id', sa.Integer(), nullable=True),
        sa.Column('advance_at', sa.Float(), nullable=True),
        sa.Column('roulette_deployed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'round',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('group_size', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('game_id', 'round_number', name='uq_round_game_number'),
    )
    op.create_index('ix_round_game_id', 'round', ['game_id'])

    op.create_table(
        'voting_group',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('round_id', sa.Integer(), sa.ForeignKey('round.id'), nullable=False),
        sa.Column('group_number', sa.Integer(), nullable=False),
        sa.Column('member_ids', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('winner_id', sa.Integer(), nullable=True),
        sa.Column('role_holder_id', sa.Integer(), nullable=True),
        sa.Column('roulette_opted_ids', sa.Text(), nullable=True),
        sa.Column('roulette_locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('round_id', 'group_number', name='uq_group_round_number'),
    )
    op.create_index('ix_voting_group_round_id', 'voting_group', ['round_id'])

    op.create_table(
        'vote',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('group_id', sa.Integer(), sa.ForeignKey('voting_group.id'), nullable=False),
        sa.Column('voter_id', sa.Integer(), nullable=False),
        sa.Column('target_id', sa.Integer(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('group_id', 'voter_id', name='uq_vote_group_voter'),
    )
    op.create_index('ix_vote_group_id', 'vote', ['group_id'])

    op.create_table(
        'signup',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('signed_up_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('game_id', 'user_id', name='uq_signup_game_user'),
    )
    op.create_index('ix_signup_game_id', 'signup', ['game_id'])

    op.create_table(
        'roster_player',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False, unique=True),
        sa.Column('status', sa.String(length=16), nullable=False),
    )


def downgrade():
    op.drop_table('roster_player')
    op.drop_index('ix_signup_game_id', table_name='signup')
    op.drop_table('signup')
    op.drop_index('ix_vote_group_id', table_name='vote')
    op.drop_table('vote')
    op.drop_index('ix_voting_group_round_id', table_name='voting_group')
    op.drop_table('voting_group')
    op.drop_index('ix_round_game_id', table_name='round')
    op.drop_table('round')
    op.drop_table('game')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
