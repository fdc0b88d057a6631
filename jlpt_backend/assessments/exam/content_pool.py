"""
Read-only access to exam content.

Loads QuestionSets, Questions and Answers reachable from a Test and turns
them into the immutable snapshot types the sampler works on. Nothing here
writes, and storage order (link order, question position, answer id) is
preserved in the snapshot.
"""

from typing import Dict, List, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from jlpt_backend.assessments.base.models import (
    CandidatePool, PoolAnswer, PoolQuestion, PoolQuestionSet, QuestionSetKind
)
from jlpt_backend.assessments.exam.database_models import (
    Question, QuestionSet, QuestionSetQuestionLink, TestQuestionSetLink
)
from jlpt_backend.common.logger import app_logger, log_execution_time

logger = app_logger.getChild("content_pool")


def _to_pool_question(question: Question) -> PoolQuestion:
    return PoolQuestion(
        id=question.id,
        kind=QuestionSetKind(question.kind),
        level=question.level,
        text_key=question.text_key,
        source_text=question.source_text,
        audio_url=question.audio_url,
        pronunciation=question.pronunciation,
        answers=tuple(
            PoolAnswer(
                id=answer.id,
                is_correct=bool(answer.is_correct),
                text_key=answer.text_key,
                source_text=answer.source_text,
            )
            for answer in question.answers
        ),
    )


def _to_pool_question_set(question_set: QuestionSet) -> PoolQuestionSet:
    return PoolQuestionSet(
        id=question_set.id,
        kind=QuestionSetKind(question_set.kind),
        level=question_set.level,
        questions=tuple(
            _to_pool_question(link.question) for link in question_set.question_links
        ),
    )


class ContentPool:
    """Read-only accessor over Question/Answer content of one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_question_sets(self, question_set_ids: Sequence[int]) -> Dict[int, QuestionSet]:
        """QuestionSet rows keyed by id; unknown ids are simply absent."""
        if not question_set_ids:
            return {}
        result = await self.session.execute(
            select(QuestionSet).where(QuestionSet.id.in_(set(question_set_ids)))
        )
        return {question_set.id: question_set for question_set in result.scalars()}

    async def get_linked_question_sets(self, test_id: int) -> List[QuestionSet]:
        """QuestionSets currently linked to ``test_id``, in link order."""
        result = await self.session.execute(
            select(QuestionSet)
            .join(TestQuestionSetLink, TestQuestionSetLink.question_set_id == QuestionSet.id)
            .where(TestQuestionSetLink.test_id == test_id)
            .order_by(TestQuestionSetLink.id)
        )
        return list(result.scalars())

    @log_execution_time(logger)
    async def load_candidate_pool(self, test_id: int) -> CandidatePool:
        """Snapshot every QuestionSet, Question and Answer reachable from ``test_id``."""
        result = await self.session.execute(
            select(TestQuestionSetLink)
            .where(TestQuestionSetLink.test_id == test_id)
            .order_by(TestQuestionSetLink.id)
            .options(
                selectinload(TestQuestionSetLink.question_set)
                .selectinload(QuestionSet.question_links)
                .selectinload(QuestionSetQuestionLink.question)
                .selectinload(Question.answers)
            )
        )
        links = result.scalars().all()
        pool = CandidatePool(
            test_id=test_id,
            question_sets=tuple(_to_pool_question_set(link.question_set) for link in links),
        )
        logger.debug(
            f"Loaded pool for test {test_id}: {len(pool.question_sets)} sets, "
            f"{len(pool.questions())} questions"
        )
        return pool
