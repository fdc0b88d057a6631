"""
Repository Module for JLPT exams

Persistence for Tests, their QuestionSet links and translations, Entitlements
and Attempts. Repositories share the caller's ``AsyncSession`` and never
commit: the request-level unit of work decides when writes become visible.
"""

import datetime
from contextlib import asynccontextmanager
from typing import Dict, Generic, Iterable, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jlpt_backend.assessments.base.models import AttemptStatus, EntitlementStatus
from jlpt_backend.assessments.exam.database_models import (
    AnswerLog, Attempt, Entitlement, Language, Test, TestQuestionSetLink, Translation
)
from jlpt_backend.common.error_handling import DatabaseError
from jlpt_backend.common.logger import app_logger
from jlpt_backend.database.base import ModelBase

T = TypeVar('T', bound=ModelBase)

logger = app_logger.getChild("exam_repository")


class BaseRepository(Generic[T]):
    """
    Shared plumbing for the exam repositories.

    ``_db_errors`` converts driver failures into ``DatabaseError`` so the API
    layer reports them uniformly.
    """

    model_class: Type[T]
    domain_type: str

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def _db_errors(self, operation: str):
        try:
            yield
        except SQLAlchemyError as e:
            logger.error(f"Database error in {self.domain_type} repository during {operation}: {e}")
            raise DatabaseError(f"Database error during {operation}", cause=e,
                                context={"repository": self.domain_type})

    async def get(self, entity_id: int) -> Optional[T]:
        async with self._db_errors("get"):
            return await self.session.get(self.model_class, entity_id)


class TestRepository(BaseRepository[Test]):
    """Tests and their QuestionSet links."""

    __test__ = False
    model_class = Test
    domain_type = "test"

    async def add(self, test: Test) -> Test:
        async with self._db_errors("add"):
            self.session.add(test)
            await self.session.flush()
        return test

    async def linked_question_set_ids(self, test_id: int) -> List[int]:
        async with self._db_errors("linked_question_set_ids"):
            result = await self.session.execute(
                select(TestQuestionSetLink.question_set_id)
                .where(TestQuestionSetLink.test_id == test_id)
                .order_by(TestQuestionSetLink.id)
            )
            return list(result.scalars())

    async def add_links(self, test_id: int, question_set_ids: Sequence[int]) -> None:
        async with self._db_errors("add_links"):
            self.session.add_all([
                TestQuestionSetLink(test_id=test_id, question_set_id=question_set_id)
                for question_set_id in question_set_ids
            ])
            await self.session.flush()

    async def remove_links(self, test_id: int, question_set_ids: Sequence[int]) -> int:
        async with self._db_errors("remove_links"):
            result = await self.session.execute(
                delete(TestQuestionSetLink).where(
                    TestQuestionSetLink.test_id == test_id,
                    TestQuestionSetLink.question_set_id.in_(set(question_set_ids)),
                )
            )
            return result.rowcount

    async def delete_cascade(self, test_id: int, translation_keys: Iterable[str]) -> None:
        """Delete a Test with everything that hangs off it."""
        attempt_ids = select(Attempt.id).where(Attempt.test_id == test_id)
        async with self._db_errors("delete_cascade"):
            await self.session.execute(delete(AnswerLog).where(AnswerLog.attempt_id.in_(attempt_ids)))
            await self.session.execute(delete(Attempt).where(Attempt.test_id == test_id))
            await self.session.execute(delete(Entitlement).where(Entitlement.test_id == test_id))
            await self.session.execute(
                delete(TestQuestionSetLink).where(TestQuestionSetLink.test_id == test_id)
            )
            await self.session.execute(
                delete(Translation).where(Translation.key.in_(list(translation_keys)))
            )
            await self.session.execute(delete(Test).where(Test.id == test_id))


class TranslationRepository(BaseRepository[Translation]):
    """Write side of the translation store."""

    model_class = Translation
    domain_type = "translation"

    async def languages_by_code(self, codes: Iterable[str]) -> Dict[str, Language]:
        async with self._db_errors("languages_by_code"):
            result = await self.session.execute(
                select(Language).where(Language.code.in_(set(codes)))
            )
            return {language.code: language for language in result.scalars()}

    async def upsert(self, key: str, language_id: int, value: str) -> Translation:
        async with self._db_errors("upsert"):
            result = await self.session.execute(
                select(Translation).where(
                    Translation.key == key, Translation.language_id == language_id
                )
            )
            translation = result.scalar_one_or_none()
            if translation is None:
                translation = Translation(key=key, language_id=language_id, value=value)
                self.session.add(translation)
            else:
                translation.value = value
            await self.session.flush()
            return translation


class EntitlementRepository(BaseRepository[Entitlement]):
    """Per user+test entitlements and their quota counters."""

    model_class = Entitlement
    domain_type = "entitlement"

    async def find(self, user_id: int, test_id: int) -> Optional[Entitlement]:
        async with self._db_errors("find"):
            result = await self.session.execute(
                select(Entitlement).where(
                    Entitlement.user_id == user_id, Entitlement.test_id == test_id
                )
            )
            return result.scalar_one_or_none()

    async def decrement_limit(self, entitlement: Entitlement) -> Entitlement:
        """
        Consume one unit of quota.

        A null or zero limit is unlimited and left alone. Reaching zero moves
        the entitlement back to NOT_STARTED.
        """
        if not entitlement.limit:
            return entitlement

        async with self._db_errors("decrement_limit"):
            entitlement.limit = entitlement.limit - 1
            if entitlement.limit == 0:
                entitlement.status = EntitlementStatus.NOT_STARTED.value
            await self.session.flush()
        return entitlement

    async def sync_limits(self, test_id: int, limit: Optional[int]) -> int:
        """Copy a Test's quota template onto all of its entitlements."""
        async with self._db_errors("sync_limits"):
            result = await self.session.execute(
                update(Entitlement)
                .where(Entitlement.test_id == test_id)
                .values(limit=limit)
                .execution_options(synchronize_session="fetch")
            )
            return result.rowcount


class AttemptRepository(BaseRepository[Attempt]):
    """Attempts and the answer logs they own."""

    model_class = Attempt
    domain_type = "attempt"

    async def find_latest(self, user_id: int, test_id: int) -> Optional[Attempt]:
        """Most recently created attempt for (user, test), whatever its status."""
        async with self._db_errors("find_latest"):
            result = await self.session.execute(
                select(Attempt)
                .where(Attempt.user_id == user_id, Attempt.test_id == test_id)
                .order_by(Attempt.created_at.desc(), Attempt.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def find_live(self, user_id: int, test_id: int) -> Optional[Attempt]:
        async with self._db_errors("find_live"):
            result = await self.session.execute(
                select(Attempt).where(
                    Attempt.user_id == user_id,
                    Attempt.test_id == test_id,
                    Attempt.status == AttemptStatus.IN_PROGRESS.value,
                )
            )
            return result.scalar_one_or_none()

    async def create_live(self, user_id: int, test_id: int) -> Optional[Attempt]:
        """
        Insert a new IN_PROGRESS attempt.

        Returns ``None`` when the live-attempt unique index rejects the row
        because a concurrent request created one first; the session is rolled
        back in that case and the caller should re-read the live attempt.
        """
        attempt = Attempt(
            user_id=user_id,
            test_id=test_id,
            status=AttemptStatus.IN_PROGRESS.value,
        )
        self.session.add(attempt)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            logger.info(f"Live attempt for user {user_id} on test {test_id} already exists")
            return None
        return attempt

    async def delete_answer_logs(self, attempt_id: int) -> int:
        async with self._db_errors("delete_answer_logs"):
            result = await self.session.execute(
                delete(AnswerLog).where(AnswerLog.attempt_id == attempt_id)
            )
            return result.rowcount

    async def mark_completed(
        self,
        attempt: Attempt,
        score: Optional[float] = None,
        duration_seconds: Optional[int] = None
    ) -> Attempt:
        async with self._db_errors("mark_completed"):
            attempt.status = AttemptStatus.COMPLETED.value
            attempt.score = score
            attempt.duration_seconds = duration_seconds
            attempt.completed_at = datetime.datetime.now(datetime.timezone.utc)
            await self.session.flush()
        return attempt
