"""
Shared fixtures for the exam tests.

Every test gets its own SQLite database file (tables created from the model
metadata), a ``Seeder`` that writes and commits fixture rows through its own
session, and a separate ``db_session`` for the code under test.
"""

import random
from typing import List, Optional, Sequence

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from jlpt_backend.assessments.base.models import (
    AttemptStatus, ContentStatus, EntitlementStatus, QuestionSetKind, TestKind
)
from jlpt_backend.assessments.exam.authoring_service import translation_key
from jlpt_backend.assessments.exam.database_models import (
    Answer, AnswerLog, Attempt, Entitlement, Language, Question, QuestionSet,
    QuestionSetQuestionLink, Test, TestQuestionSetLink, Translation
)
from jlpt_backend.database.base import Base


@pytest_asyncio.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'jlpt_test.db'}",
        poolclass=NullPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def rng():
    return random.Random(20240501)


class Seeder:
    """Writes fixture rows and commits each batch immediately."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def _save(self, *rows):
        async with self.session_factory() as session:
            session.add_all(rows)
            await session.commit()
        return rows[0] if len(rows) == 1 else rows

    async def language(self, code: str) -> Language:
        return await self._save(Language(code=code, name=code))

    async def translation(self, language: Language, key: str, value: str) -> Translation:
        return await self._save(Translation(language_id=language.id, key=key, value=value))

    async def test(
        self,
        kind: TestKind,
        creator_id: int = 1,
        limit: Optional[int] = None,
        status: ContentStatus = ContentStatus.ACTIVE,
    ) -> Test:
        test = Test(kind=kind.value, status=status.value, limit=limit, creator_id=creator_id)
        async with self.session_factory() as session:
            session.add(test)
            await session.flush()
            test.name = translation_key(test.id, "name")
            test.description = translation_key(test.id, "description")
            await session.commit()
        return test

    async def question(
        self,
        kind: QuestionSetKind,
        level: int,
        answers: int = 4,
        source_text: Optional[str] = None,
        text_key: Optional[str] = None,
    ) -> Question:
        question = await self._save(Question(
            kind=kind.value,
            level=level,
            text_key=text_key,
            source_text=source_text or f"{kind.value.lower()} N{level}",
        ))
        await self._save(*[
            Answer(
                question_id=question.id,
                is_correct=(i == 0),
                source_text=f"answer {i}",
            )
            for i in range(answers)
        ])
        return question

    async def question_set(
        self,
        kind: QuestionSetKind,
        questions: Sequence[Question] = (),
        level: Optional[int] = None,
    ) -> QuestionSet:
        question_set = await self._save(QuestionSet(
            kind=kind.value, level=level, status=ContentStatus.ACTIVE.value
        ))
        if questions:
            await self._save(*[
                QuestionSetQuestionLink(
                    question_set_id=question_set.id, question_id=question.id, position=i
                )
                for i, question in enumerate(questions)
            ])
        return question_set

    async def filled_set(
        self,
        kind: QuestionSetKind,
        levels: Sequence[int],
        question_kind: Optional[QuestionSetKind] = None,
    ) -> QuestionSet:
        """A set with one question per entry of ``levels``."""
        questions = [await self.question(question_kind or kind, level) for level in levels]
        return await self.question_set(kind, questions)

    async def link(self, test: Test, *question_sets: QuestionSet) -> None:
        await self._save(*[
            TestQuestionSetLink(test_id=test.id, question_set_id=question_set.id)
            for question_set in question_sets
        ])

    async def entitlement(
        self,
        user_id: int,
        test: Test,
        limit: Optional[int] = None,
        status: EntitlementStatus = EntitlementStatus.ACTIVE,
    ) -> Entitlement:
        return await self._save(Entitlement(
            user_id=user_id, test_id=test.id, limit=limit, status=status.value
        ))

    async def attempt(self, user_id: int, test: Test, status: AttemptStatus) -> Attempt:
        return await self._save(Attempt(user_id=user_id, test_id=test.id, status=status.value))

    async def answer_logs(self, attempt: Attempt, questions: Sequence[Question]) -> List[AnswerLog]:
        rows = [AnswerLog(attempt_id=attempt.id, question_id=q.id) for q in questions]
        await self._save(*rows)
        return rows


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)
