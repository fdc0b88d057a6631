"""
Session Service for JLPT exams

Owns the Attempt state machine for a (user, test) pair:

    no attempt --start--> IN_PROGRESS --complete--> COMPLETED
                               ^                        |
                               +-------- start ---------+

Starting a session while an attempt is IN_PROGRESS reuses it and wipes its
answer logs; otherwise a new attempt is created. The partial unique index on
live attempts makes creation race-safe: a losing insert re-reads and reuses
the winner's attempt. Quota is never consumed here; ``consume_quota`` is
called by the scoring flow.
"""

import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from jlpt_backend.assessments.base.models import AttemptStatus, SampledQuestion, TestKind
from jlpt_backend.assessments.exam.content_pool import ContentPool
from jlpt_backend.assessments.exam.database_models import Attempt, Entitlement
from jlpt_backend.assessments.exam.localization import (
    LocalizationResolver, Localizer, SqlLocalizationResolver
)
from jlpt_backend.assessments.exam.question_selection import (
    LevelDrawStrategy, QuestionSampler, session_strategy_for
)
from jlpt_backend.assessments.exam.repository import (
    AttemptRepository, EntitlementRepository, TestRepository
)
from jlpt_backend.common.error_handling import (
    DatabaseError, ErrorCode, JLPTError, NotEntitledError, NotFoundError, TestNotFoundError,
    ValidationError
)
from jlpt_backend.common.logger import LoggerAdapter, app_logger, log_execution_time
from jlpt_backend.config import settings

logger = app_logger.getChild("session_service")


@dataclass
class SessionStart:
    attempt_id: int
    reused: bool
    questions: List[Dict[str, Any]]
    distribution: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attemptId": self.attempt_id,
            "questions": self.questions,
            "distribution": self.distribution,
        }


async def present_question(
    sampled: SampledQuestion,
    localizer: Localizer,
    blank_correctness: bool = False
) -> Dict[str, Any]:
    """Localized payload of one drawn question, answers in drawn order."""
    question = sampled.question
    answers = []
    for answer in sampled.answers:
        payload: Dict[str, Any] = {
            "id": answer.id,
            "answer": await localizer.text(answer.text_key, answer.source_text),
        }
        if blank_correctness:
            payload["isCorrect"] = None
        answers.append(payload)

    return {
        "id": question.id,
        "kind": question.kind.value,
        "level": question.level,
        "question": await localizer.text(question.text_key, question.source_text),
        "audioUrl": question.audio_url,
        "pronunciation": question.pronunciation,
        "answers": answers,
    }


class SessionManager:
    """Starts exam sessions and draws question batches."""

    def __init__(
        self,
        session: AsyncSession,
        rng: random.Random,
        resolver: Optional[LocalizationResolver] = None
    ):
        self.session = session
        self.tests = TestRepository(session)
        self.attempts = AttemptRepository(session)
        self.entitlements = EntitlementRepository(session)
        self.content = ContentPool(session)
        self.sampler = QuestionSampler(rng)
        self.resolver = resolver or SqlLocalizationResolver(session)

    async def _require_kind(self, test_id: int, expected_kind: Optional[TestKind]) -> TestKind:
        test = await self.tests.get(test_id)
        if test is None:
            raise TestNotFoundError(test_id)
        kind = TestKind(test.kind)
        if expected_kind is not None and kind is not expected_kind:
            raise ValidationError(
                f"Test {test_id} is a {kind.value}, expected {expected_kind.value}",
                details={"test_id": test_id, "kind": kind.value, "expected_kind": expected_kind.value}
            )
        return kind

    async def _require_entitlement(self, user_id: int, test_id: int) -> Entitlement:
        entitlement = await self.entitlements.find(user_id, test_id)
        if entitlement is None:
            raise NotEntitledError(user_id, test_id)
        return entitlement

    async def _reuse(self, attempt: Attempt, log: LoggerAdapter) -> Tuple[int, bool]:
        attempt_id = attempt.id
        removed = await self.attempts.delete_answer_logs(attempt_id)
        log.info(f"Reusing attempt {attempt_id}; cleared {removed} answer log(s)")
        return attempt_id, True

    async def _claim_attempt(self, user_id: int, test_id: int, log: LoggerAdapter) -> Tuple[int, bool]:
        latest = await self.attempts.find_latest(user_id, test_id)
        if latest is not None and latest.status == AttemptStatus.IN_PROGRESS.value:
            return await self._reuse(latest, log)

        created = await self.attempts.create_live(user_id, test_id)
        if created is not None:
            log.info(f"Created attempt {created.id}")
            return created.id, False

        live = await self.attempts.find_live(user_id, test_id)
        if live is None:
            raise DatabaseError(
                "Live attempt vanished after a conflicting insert",
                context={"user_id": user_id, "test_id": test_id}
            )
        return await self._reuse(live, log)

    @log_execution_time(logger, expected=(JLPTError,))
    async def start_session(
        self,
        user_id: int,
        test_id: int,
        expected_kind: TestKind,
        language: Optional[str] = None
    ) -> SessionStart:
        """
        Start (or restart) a session and draw its question batch.

        Raises:
            TestNotFoundError: unknown test
            ValidationError: the test is not of ``expected_kind`` or its kind
                has no session strategy
            NotEntitledError: the user holds no entitlement for the test
            InsufficientContentError: the strategy cannot be satisfied
        """
        log = LoggerAdapter(logger, {"user_id": user_id, "test_id": test_id})

        kind = await self._require_kind(test_id, expected_kind)
        strategy = session_strategy_for(kind)
        await self._require_entitlement(user_id, test_id)

        attempt_id, reused = await self._claim_attempt(user_id, test_id, log)

        pool = await self.content.load_candidate_pool(test_id)
        result = self.sampler.sample(pool, strategy)
        localizer = Localizer(self.resolver, language)
        questions = [await present_question(item, localizer) for item in result.questions]

        log.with_context(attempt_id=attempt_id).info(
            f"Session ready with {len(questions)} question(s): {result.distribution}"
        )
        return SessionStart(
            attempt_id=attempt_id,
            reused=reused,
            questions=questions,
            distribution=result.distribution,
        )

    async def draw_by_level(
        self,
        test_id: int,
        level: int,
        count: int,
        language: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Draw ``count`` random questions of ``level`` from a Test.

        No attempt is created. Correctness flags are blanked in the output.
        """
        if count > settings.MAX_LEVEL_DRAW_COUNT:
            raise ValidationError(
                f"count must not exceed {settings.MAX_LEVEL_DRAW_COUNT}",
                details={"count": count}
            )
        strategy = LevelDrawStrategy(level=level, count=count)
        await self._require_kind(test_id, None)

        pool = await self.content.load_candidate_pool(test_id)
        result = self.sampler.sample(pool, strategy)
        localizer = Localizer(self.resolver, language)
        questions = [
            await present_question(item, localizer, blank_correctness=True)
            for item in result.questions
        ]
        return {
            "questions": questions,
            "levelN": level,
            "count": len(questions),
        }

    async def consume_quota(self, user_id: int, test_id: int) -> Entitlement:
        """Decrement the user's quota for a test; unlimited entitlements are unchanged."""
        entitlement = await self._require_entitlement(user_id, test_id)
        entitlement = await self.entitlements.decrement_limit(entitlement)
        logger.info(
            f"Quota for user {user_id} on test {test_id} now {entitlement.limit} "
            f"({entitlement.status})"
        )
        return entitlement

    async def complete_attempt(
        self,
        attempt_id: int,
        score: Optional[float] = None,
        duration_seconds: Optional[int] = None
    ) -> Attempt:
        """Mark an IN_PROGRESS attempt COMPLETED."""
        attempt = await self.attempts.get(attempt_id)
        if attempt is None:
            raise NotFoundError("Attempt", attempt_id, code=ErrorCode.ATTEMPT_NOT_FOUND)
        if attempt.status != AttemptStatus.IN_PROGRESS.value:
            raise ValidationError(
                f"Attempt {attempt_id} is already {attempt.status}",
                details={"attempt_id": attempt_id, "status": attempt.status}
            )
        return await self.attempts.mark_completed(attempt, score, duration_seconds)
