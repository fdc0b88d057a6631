"""
SQLAlchemy ORM models for JLPT exams.

This module defines the tables read and written by the assessment engine:
- Language / Translation: the localization key-value store
- Test, QuestionSet and the TestQuestionSetLink join between them
- Question, Answer and the ordered QuestionSetQuestionLink join
- Entitlement: per user+test permission and quota counter
- Attempt / AnswerLog: one user's run through a Test and its responses
"""

import datetime
from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.schema import UniqueConstraint

from jlpt_backend.assessments.base.models import (
    AttemptStatus, ContentStatus, EntitlementStatus, QuestionSetKind, TestKind
)
from jlpt_backend.database.base import ModelBase

LIVE_ATTEMPT_PREDICATE = text(f"status = '{AttemptStatus.IN_PROGRESS.value}'")


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Language(ModelBase):
    __tablename__ = 'languages'

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(10), nullable=False, unique=True)
    name = Column(String(100), nullable=True)


class Translation(ModelBase):
    """One localized value of a symbolic text key."""
    __tablename__ = 'translations'

    id = Column(Integer, primary_key=True, autoincrement=True)
    language_id = Column(Integer, ForeignKey('languages.id', ondelete="CASCADE"), nullable=False)
    key = Column(String(255), nullable=False, index=True)
    value = Column(Text, nullable=False)

    language = relationship("Language")

    __table_args__ = (
        UniqueConstraint('language_id', 'key', name='uq_translations_language_key'),
    )


class Test(ModelBase):
    """
    A top-level assessment definition.

    ``name`` and ``description`` hold translation keys. ``limit`` is the quota
    template copied onto Entitlements; null means unlimited.
    """
    __tablename__ = 'tests'
    __test__ = False

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=True)
    description = Column(String(255), nullable=True)
    kind = Column(String(50), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=ContentStatus.DRAFT.value)
    limit = Column(Integer, nullable=True)
    creator_id = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    question_set_links = relationship(
        "TestQuestionSetLink", back_populates="test",
        cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def test_kind(self) -> TestKind:
        return TestKind(self.kind)


class QuestionSet(ModelBase):
    """A typed group of Questions; level 0 means mixed-level."""
    __tablename__ = 'question_sets'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=True)
    description = Column(String(255), nullable=True)
    kind = Column(String(50), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=ContentStatus.DRAFT.value)
    level = Column(Integer, nullable=True)
    content = Column(Text, nullable=True)
    audio_url = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    question_links = relationship(
        "QuestionSetQuestionLink", back_populates="question_set",
        order_by="QuestionSetQuestionLink.position",
        cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def question_set_kind(self) -> QuestionSetKind:
        return QuestionSetKind(self.kind)


class TestQuestionSetLink(ModelBase):
    __tablename__ = 'test_question_sets'
    __test__ = False

    id = Column(Integer, primary_key=True, autoincrement=True)
    test_id = Column(Integer, ForeignKey('tests.id', ondelete="CASCADE"), nullable=False, index=True)
    question_set_id = Column(
        Integer, ForeignKey('question_sets.id', ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    test = relationship("Test", back_populates="question_set_links")
    question_set = relationship("QuestionSet")

    __table_args__ = (
        UniqueConstraint('test_id', 'question_set_id', name='uq_test_question_sets_pair'),
    )


class Question(ModelBase):
    __tablename__ = 'questions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(50), nullable=False, index=True)
    level = Column(Integer, nullable=False, index=True)
    text_key = Column(String(255), nullable=True)
    source_text = Column(Text, nullable=True)
    audio_url = Column(String(512), nullable=True)
    pronunciation = Column(String(255), nullable=True)

    answers = relationship(
        "Answer", back_populates="question", order_by="Answer.id",
        cascade="all, delete-orphan", passive_deletes=True
    )


class QuestionSetQuestionLink(ModelBase):
    """Places a Question inside a QuestionSet at ``position``."""
    __tablename__ = 'question_set_questions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    question_set_id = Column(
        Integer, ForeignKey('question_sets.id', ondelete="CASCADE"), nullable=False, index=True
    )
    question_id = Column(Integer, ForeignKey('questions.id', ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    question_set = relationship("QuestionSet", back_populates="question_links")
    question = relationship("Question")

    __table_args__ = (
        UniqueConstraint('question_set_id', 'question_id', name='uq_question_set_questions_pair'),
    )


class Answer(ModelBase):
    __tablename__ = 'answers'

    id = Column(Integer, primary_key=True, autoincrement=True)
    question_id = Column(Integer, ForeignKey('questions.id', ondelete="CASCADE"), nullable=False, index=True)
    is_correct = Column(Boolean, nullable=False, default=False)
    text_key = Column(String(255), nullable=True)
    source_text = Column(Text, nullable=True)

    question = relationship("Question", back_populates="answers")


class Entitlement(ModelBase):
    """
    Per user+test permission and quota record.

    ``limit`` null or 0 means unlimited; any other value counts down.
    """
    __tablename__ = 'entitlements'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    test_id = Column(Integer, ForeignKey('tests.id', ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=EntitlementStatus.ACTIVE.value)
    limit = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'test_id', name='uq_entitlements_user_test'),
    )


class Attempt(ModelBase):
    """
    One user's run through a Test.

    At most one IN_PROGRESS attempt may exist per (user, test); the partial
    unique index below enforces it at the database level.
    """
    __tablename__ = 'attempts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    test_id = Column(Integer, ForeignKey('tests.id', ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False, default=AttemptStatus.IN_PROGRESS.value)
    score = Column(Float, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    answer_logs = relationship(
        "AnswerLog", back_populates="attempt",
        cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index('idx_attempts_user_test_created', 'user_id', 'test_id', 'created_at'),
        Index(
            'uq_attempts_live_user_test', 'user_id', 'test_id',
            unique=True,
            postgresql_where=LIVE_ATTEMPT_PREDICATE,
            sqlite_where=LIVE_ATTEMPT_PREDICATE,
        ),
    )


class AnswerLog(ModelBase):
    """A user's response to one Question inside one Attempt."""
    __tablename__ = 'answer_logs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    attempt_id = Column(Integer, ForeignKey('attempts.id', ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey('questions.id', ondelete="CASCADE"), nullable=False)
    answer_id = Column(Integer, ForeignKey('answers.id', ondelete="SET NULL"), nullable=True)
    is_correct = Column(Boolean, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    attempt = relationship("Attempt", back_populates="answer_logs")
