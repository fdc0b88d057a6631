"""Initial exam schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

LIVE_ATTEMPT = sa.text("status = 'IN_PROGRESS'")


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade():
    op.create_table(
        'languages',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('code', sa.String(10), nullable=False),
        sa.Column('name', sa.String(100), nullable=True),
        sa.UniqueConstraint('code', name='uq_languages_code'),
    )

    op.create_table(
        'translations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('language_id', sa.Integer(),
                  sa.ForeignKey('languages.id', ondelete='CASCADE',
                                name='fk_translations_language_id_languages'),
                  nullable=False),
        sa.Column('key', sa.String(255), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.UniqueConstraint('language_id', 'key', name='uq_translations_language_key'),
    )
    op.create_index('ix_translations_key', 'translations', ['key'])

    op.create_table(
        'tests',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('description', sa.String(255), nullable=True),
        sa.Column('kind', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='DRAFT'),
        sa.Column('limit', sa.Integer(), nullable=True),
        sa.Column('creator_id', sa.Integer(), nullable=False),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_tests_kind', 'tests', ['kind'])
    op.create_index('ix_tests_creator_id', 'tests', ['creator_id'])

    op.create_table(
        'question_sets',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('description', sa.String(255), nullable=True),
        sa.Column('kind', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='DRAFT'),
        sa.Column('level', sa.Integer(), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('audio_url', sa.String(512), nullable=True),
        _created_at(),
    )
    op.create_index('ix_question_sets_kind', 'question_sets', ['kind'])

    op.create_table(
        'test_question_sets',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('test_id', sa.Integer(),
                  sa.ForeignKey('tests.id', ondelete='CASCADE',
                                name='fk_test_question_sets_test_id_tests'),
                  nullable=False),
        sa.Column('question_set_id', sa.Integer(),
                  sa.ForeignKey('question_sets.id', ondelete='CASCADE',
                                name='fk_test_question_sets_question_set_id_question_sets'),
                  nullable=False),
        _created_at(),
        sa.UniqueConstraint('test_id', 'question_set_id', name='uq_test_question_sets_pair'),
    )
    op.create_index('ix_test_question_sets_test_id', 'test_question_sets', ['test_id'])
    op.create_index('ix_test_question_sets_question_set_id', 'test_question_sets', ['question_set_id'])

    op.create_table(
        'questions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('kind', sa.String(50), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('text_key', sa.String(255), nullable=True),
        sa.Column('source_text', sa.Text(), nullable=True),
        sa.Column('audio_url', sa.String(512), nullable=True),
        sa.Column('pronunciation', sa.String(255), nullable=True),
    )
    op.create_index('ix_questions_kind', 'questions', ['kind'])
    op.create_index('ix_questions_level', 'questions', ['level'])

    op.create_table(
        'question_set_questions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('question_set_id', sa.Integer(),
                  sa.ForeignKey('question_sets.id', ondelete='CASCADE',
                                name='fk_question_set_questions_question_set_id_question_sets'),
                  nullable=False),
        sa.Column('question_id', sa.Integer(),
                  sa.ForeignKey('questions.id', ondelete='CASCADE',
                                name='fk_question_set_questions_question_id_questions'),
                  nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('question_set_id', 'question_id', name='uq_question_set_questions_pair'),
    )
    op.create_index('ix_question_set_questions_question_set_id', 'question_set_questions', ['question_set_id'])

    op.create_table(
        'answers',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('question_id', sa.Integer(),
                  sa.ForeignKey('questions.id', ondelete='CASCADE',
                                name='fk_answers_question_id_questions'),
                  nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('text_key', sa.String(255), nullable=True),
        sa.Column('source_text', sa.Text(), nullable=True),
    )
    op.create_index('ix_answers_question_id', 'answers', ['question_id'])

    op.create_table(
        'entitlements',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('test_id', sa.Integer(),
                  sa.ForeignKey('tests.id', ondelete='CASCADE',
                                name='fk_entitlements_test_id_tests'),
                  nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='ACTIVE'),
        sa.Column('limit', sa.Integer(), nullable=True),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'test_id', name='uq_entitlements_user_test'),
    )
    op.create_index('ix_entitlements_user_id', 'entitlements', ['user_id'])
    op.create_index('ix_entitlements_test_id', 'entitlements', ['test_id'])

    op.create_table(
        'attempts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('test_id', sa.Integer(),
                  sa.ForeignKey('tests.id', ondelete='CASCADE',
                                name='fk_attempts_test_id_tests'),
                  nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='IN_PROGRESS'),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('idx_attempts_user_test_created', 'attempts', ['user_id', 'test_id', 'created_at'])
    op.create_index(
        'uq_attempts_live_user_test', 'attempts', ['user_id', 'test_id'],
        unique=True,
        postgresql_where=LIVE_ATTEMPT,
        sqlite_where=LIVE_ATTEMPT,
    )

    op.create_table(
        'answer_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('attempt_id', sa.Integer(),
                  sa.ForeignKey('attempts.id', ondelete='CASCADE',
                                name='fk_answer_logs_attempt_id_attempts'),
                  nullable=False),
        sa.Column('question_id', sa.Integer(),
                  sa.ForeignKey('questions.id', ondelete='CASCADE',
                                name='fk_answer_logs_question_id_questions'),
                  nullable=False),
        sa.Column('answer_id', sa.Integer(),
                  sa.ForeignKey('answers.id', ondelete='SET NULL',
                                name='fk_answer_logs_answer_id_answers'),
                  nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        _created_at(),
    )
    op.create_index('ix_answer_logs_attempt_id', 'answer_logs', ['attempt_id'])


def downgrade():
    op.drop_table('answer_logs')
    op.drop_index('uq_attempts_live_user_test', table_name='attempts')
    op.drop_table('attempts')
    op.drop_table('entitlements')
    op.drop_table('answers')
    op.drop_table('question_set_questions')
    op.drop_table('questions')
    op.drop_table('test_question_sets')
    op.drop_table('question_sets')
    op.drop_table('tests')
    op.drop_table('translations')
    op.drop_table('languages')
