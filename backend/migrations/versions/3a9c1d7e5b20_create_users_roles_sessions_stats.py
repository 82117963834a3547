"""create user, role, game_session and user_stats tables

Revision ID: 3a9c1d7e5b20
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3a9c1d7e5b20'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)

    if 'role' not in existing_tables:
        role = op.create_table(
            'role',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=16), nullable=False, unique=True),
        )
        op.bulk_insert(role, [{'name': 'usr'}, {'name': 'adm'}, {'name': 'Sa'}])

    if 'user_roles' not in existing_tables:
        op.create_table(
            'user_roles',
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), primary_key=True),
            sa.Column('role_id', sa.Integer(), sa.ForeignKey('role.id'), primary_key=True),
        )

    if 'user_stats' not in existing_tables:
        op.create_table(
            'user_stats',
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), primary_key=True),
            sa.Column('wins', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('losses', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('draws', sa.Integer(), nullable=False, server_default='0'),
        )

    if 'game_session' not in existing_tables:
        op.create_table(
            'game_session',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('player_x_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('player_o_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('board', sa.Text(), nullable=False),
            sa.Column('current_turn', sa.String(length=1), nullable=False, server_default='X'),
            sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
            sa.Column('winner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('last_move_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_game_session_player_x_id', 'game_session', ['player_x_id'])
        op.create_index('ix_game_session_player_o_id', 'game_session', ['player_o_id'])


def downgrade():
    op.drop_index('ix_game_session_player_o_id', table_name='game_session')
    op.drop_index('ix_game_session_player_x_id', table_name='game_session')
    op.drop_table('game_session')
    op.drop_table('user_stats')
    op.drop_table('user_roles')
    op.drop_table('role')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
