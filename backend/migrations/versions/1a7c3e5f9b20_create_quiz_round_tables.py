"""create quiz, question, round_state and response tables

Revision ID: 1a7c3e5f9b20
Revises:
Create Date: 2026-10-18 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a7c3e5f9b20'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'quiz' not in existing_tables:
        op.create_table(
            'quiz',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('title_en', sa.String(length=256), nullable=False),
            sa.Column('title_ar', sa.String(length=256), nullable=False),
            sa.Column('created_at', sa.Float(), nullable=False),
        )

    if 'question' not in existing_tables:
        op.create_table(
            'question',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('quiz_id', sa.Integer(), sa.ForeignKey('quiz.id'), nullable=False),
            sa.Column('question_en', sa.Text(), nullable=False),
            sa.Column('question_ar', sa.Text(), nullable=False),
            sa.Column('options', sa.Text(), nullable=False),
            sa.Column('correct_index', sa.Integer(), nullable=False),
            sa.Column('sort_order', sa.Integer(), nullable=False),
        )
        op.create_index('ix_question_quiz_id', 'question', ['quiz_id'])

    if 'round_state' not in existing_tables:
        op.create_table(
            'round_state',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('status', sa.String(length=16), nullable=False),
            sa.Column('question_id', sa.Integer(), sa.ForeignKey('question.id', name='fk_round_state_question_id'), nullable=True),
            sa.Column('quiz_id', sa.Integer(), sa.ForeignKey('quiz.id', name='fk_round_state_quiz_id'), nullable=True),
            sa.Column('started_at', sa.Float(), nullable=True),
            sa.Column('timer_sec', sa.Integer(), nullable=False),
            sa.Column('shuffle_seed', sa.BigInteger(), nullable=False),
            sa.Column('version', sa.Integer(), nullable=False),
        )
        # The singleton row every observer reads
        op.execute("INSERT INTO round_state (id, status, timer_sec, shuffle_seed, version) VALUES (1, 'idle', 20, 0, 0)")

    if 'response' not in existing_tables:
        op.create_table(
            'response',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('question_id', sa.Integer(), sa.ForeignKey('question.id'), nullable=False),
            sa.Column('player_name', sa.String(length=64), nullable=False),
            sa.Column('selected_index', sa.Integer(), nullable=False),
            sa.Column('is_correct', sa.Boolean(), nullable=False),
            sa.Column('response_time_ms', sa.Integer(), nullable=False),
            sa.Column('timer_sec', sa.Integer(), nullable=False),
            sa.Column('created_at', sa.Float(), nullable=False),
            sa.UniqueConstraint('question_id', 'player_name', name='uq_response_question_player'),
        )
        op.create_index('ix_response_question_id', 'response', ['question_id'])


def downgrade():
    op.drop_index('ix_response_question_id', table_name='response')
    op.drop_table('response')
    op.drop_table('round_state')
    op.drop_index('ix_question_quiz_id', table_name='question')
    op.drop_table('question')
    op.drop_table('quiz')
