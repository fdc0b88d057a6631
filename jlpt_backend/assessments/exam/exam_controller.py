"""
Exam API Controller

HTTP endpoints for Test authoring, QuestionSet composition and the sampled
question batches served to test takers. Handlers are thin: they parse input,
call the authoring service or session manager and wrap the result in the
standard envelope. Errors propagate to the application's exception handlers.
"""

import random
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jlpt_backend.api import APIResponse
from jlpt_backend.assessments.base.models import TestKind
from jlpt_backend.assessments.exam.authoring_service import TestService
from jlpt_backend.assessments.exam.schemas import (
    CreateTestRequest, QuestionSetIdsRequest, UpdateTestRequest
)
from jlpt_backend.assessments.exam.session_service import SessionManager
from jlpt_backend.common.auth import get_current_user_id
from jlpt_backend.common.logger import app_logger
from jlpt_backend.common.sampling import make_random_source
from jlpt_backend.database.init_db import get_async_db

logger = app_logger.getChild("exam_controller")

router = APIRouter(prefix="/test")


def get_random_source() -> random.Random:
    """Per-request random source; seeded from settings when configured."""
    return make_random_source()


def _test_payload(test) -> Dict[str, Any]:
    return {
        "id": test.id,
        "kind": test.kind,
        "status": test.status,
        "limit": test.limit,
        "creatorId": test.creator_id,
    }


@router.post("", status_code=201)
async def create_test(
    request: CreateTestRequest = Body(...),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
):
    """Create a Test together with its translations."""
    test = await TestService(db).create_test(
        owner_id=user_id,
        kind=request.kind,
        status=request.status,
        limit=request.limit,
        translations=request.translations,
    )
    return APIResponse.success(_test_payload(test), message="Test created")


@router.get("/{test_id}")
async def get_test(
    test_id: int = Path(..., ge=1),
    lang: Optional[str] = Query(None, max_length=10),
    db: AsyncSession = Depends(get_async_db),
):
    return APIResponse.success(await TestService(db).get_test(test_id, lang))


@router.put("/{test_id}")
async def update_test(
    test_id: int = Path(..., ge=1),
    request: UpdateTestRequest = Body(...),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
):
    """Partially update a Test; a kind change is checked against its linked sets."""
    changes = {name: getattr(request, name) for name in request.model_fields_set}
    test = await TestService(db).update_test(test_id, user_id, changes)
    return APIResponse.success(_test_payload(test), message="Test updated")


@router.delete("/{test_id}")
async def delete_test(
    test_id: int = Path(..., ge=1),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
):
    await TestService(db).delete_test(test_id, user_id)
    return APIResponse.success({"id": test_id}, message="Test deleted")


@router.post("/{test_id}/testsets")
async def add_question_sets(
    test_id: int = Path(..., ge=1),
    request: QuestionSetIdsRequest = Body(...),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
):
    """Attach QuestionSets to a Test under its composition rule."""
    added = await TestService(db).attach_question_sets(test_id, request.test_set_ids)
    return APIResponse.success({"testId": test_id, "testSetIds": added}, message="Question sets added")


@router.delete("/{test_id}/testsets")
async def remove_question_sets(
    test_id: int = Path(..., ge=1),
    request: QuestionSetIdsRequest = Body(...),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
):
    removed = await TestService(db).detach_question_sets(test_id, request.test_set_ids)
    return APIResponse.success({"testId": test_id, "testSetIds": removed}, message="Question sets removed")


@router.get("/{test_id}/placement-questions")
async def get_placement_questions(
    test_id: int = Path(..., ge=1),
    lang: Optional[str] = Query(None, max_length=10),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
    rng: random.Random = Depends(get_random_source),
):
    """Start a placement session: 3/4/3 questions from levels 5/4/3."""
    result = await SessionManager(db, rng).start_session(
        user_id, test_id, TestKind.PLACEMENT, language=lang
    )
    return APIResponse.success(result.to_dict())


@router.get("/{test_id}/lesson-review-questions")
async def get_lesson_review_questions(
    test_id: int = Path(..., ge=1),
    lang: Optional[str] = Query(None, max_length=10),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
    rng: random.Random = Depends(get_random_source),
):
    """Start a lesson-review session: 10 questions merged from vocabulary, grammar and kanji."""
    result = await SessionManager(db, rng).start_session(
        user_id, test_id, TestKind.LESSON_REVIEW, language=lang
    )
    return APIResponse.success(result.to_dict())


@router.get("/{test_id}/questions-by-level")
async def get_questions_by_level(
    test_id: int = Path(..., ge=1),
    level: int = Query(...),
    count: int = Query(...),
    lang: Optional[str] = Query(None, max_length=10),
    db: AsyncSession = Depends(get_async_db),
    rng: random.Random = Depends(get_random_source),
):
    data = await SessionManager(db, rng).draw_by_level(test_id, level, count, language=lang)
    return APIResponse.success(data)
