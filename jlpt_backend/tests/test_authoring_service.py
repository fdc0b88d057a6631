"""
Tests for Test authoring: create/update/delete with translations and the
all-or-nothing attach and detach of QuestionSets.
"""

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from jlpt_backend.assessments.base.models import (
    AttemptStatus, ContentStatus, QuestionSetKind, TestKind
)
from jlpt_backend.assessments.exam.authoring_service import TestService, translation_key
from jlpt_backend.assessments.exam.database_models import (
    Attempt, Entitlement, Test, TestQuestionSetLink, Translation
)
from jlpt_backend.assessments.exam.schemas import TranslationInput
from jlpt_backend.common.error_handling import (
    CompositionViolation, PermissionDeniedError, QuestionSetNotFoundError,
    TestNotFoundError, ValidationError
)

OWNER_ID = 1

V = QuestionSetKind.VOCABULARY
G = QuestionSetKind.GRAMMAR
K = QuestionSetKind.KANJI
R = QuestionSetKind.READING


def names(**values):
    return [
        TranslationInput(field="name", language_code=code, value=value)
        for code, value in values.items()
    ]


@pytest.fixture
def service(db_session):
    return TestService(db_session)


@pytest_asyncio.fixture
async def languages(seed):
    return [await seed.language("en"), await seed.language("ja")]


async def linked_ids(session, test_id):
    result = await session.execute(
        select(TestQuestionSetLink.question_set_id)
        .where(TestQuestionSetLink.test_id == test_id)
        .order_by(TestQuestionSetLink.id)
    )
    return list(result.scalars())


class TestCreateAndRead:
    @pytest.mark.asyncio
    async def test_create_writes_translations(self, service, languages):
        test = await service.create_test(
            OWNER_ID, TestKind.PLACEMENT, names(en="Placement", ja="実力テスト"), limit=3
        )

        assert test.id is not None
        assert test.name == translation_key(test.id, "name")
        assert test.status == ContentStatus.DRAFT.value

        data = await service.get_test(test.id, "ja")
        assert data["name"] == "実力テスト"
        assert data["description"] is None
        assert data["limit"] == 3
        assert data["creatorId"] == OWNER_ID
        assert data["testSetIds"] == []

    @pytest.mark.asyncio
    async def test_get_without_language_lists_every_translation(self, service, languages):
        test = await service.create_test(OWNER_ID, TestKind.QUIZ, names(en="Quiz"))

        data = await service.get_test(test.id)

        assert data["name"] == [
            {"language": "en", "value": "Quiz"},
            {"language": "ja", "value": None},
        ]

    @pytest.mark.asyncio
    async def test_unknown_language_is_rejected(self, service, languages):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_test(OWNER_ID, TestKind.QUIZ, names(xx="Quiz"))
        assert exc_info.value.details["language_codes"] == ["xx"]

    @pytest.mark.asyncio
    async def test_name_is_required(self, service, languages):
        description = [TranslationInput(field="description", language_code="en", value="About")]
        with pytest.raises(ValidationError):
            await service.create_test(OWNER_ID, TestKind.QUIZ, description)

    @pytest.mark.asyncio
    async def test_get_unknown_test(self, service):
        with pytest.raises(TestNotFoundError):
            await service.get_test(999)


class TestUpdate:
    @pytest.mark.asyncio
    async def test_only_the_creator_may_update(self, seed, service):
        test = await seed.test(TestKind.QUIZ, creator_id=OWNER_ID)

        with pytest.raises(PermissionDeniedError):
            await service.update_test(test.id, OWNER_ID + 1, {"status": ContentStatus.ACTIVE})

    @pytest.mark.asyncio
    async def test_status_and_translations(self, seed, service, languages):
        test = await seed.test(TestKind.QUIZ, status=ContentStatus.DRAFT)

        updated = await service.update_test(
            test.id, OWNER_ID,
            {"status": ContentStatus.ACTIVE, "translations": names(en="Renamed")},
        )

        assert updated.status == ContentStatus.ACTIVE.value
        assert (await service.get_test(test.id, "en"))["name"] == "Renamed"

    @pytest.mark.asyncio
    async def test_kind_change_blocked_by_linked_sets(self, seed, service, db_session):
        test = await seed.test(TestKind.QUIZ)
        reading = await seed.filled_set(R, [3])
        vocabulary = await seed.filled_set(V, [3])
        await seed.link(test, reading, vocabulary)

        with pytest.raises(CompositionViolation) as exc_info:
            await service.update_test(test.id, OWNER_ID, {"kind": TestKind.READING})
        assert exc_info.value.question_set_ids == [vocabulary.id]

    @pytest.mark.asyncio
    async def test_kind_change_allowed_when_sets_fit(self, seed, service):
        test = await seed.test(TestKind.QUIZ)
        await seed.link(test, await seed.filled_set(R, [3]))

        updated = await service.update_test(test.id, OWNER_ID, {"kind": TestKind.READING})

        assert updated.kind == TestKind.READING.value

    @pytest.mark.asyncio
    async def test_limit_change_is_synced_to_entitlements(self, seed, service, db_session):
        test = await seed.test(TestKind.QUIZ, limit=5)
        await seed.entitlement(7, test, limit=2)
        await seed.entitlement(8, test, limit=None)

        await service.update_test(test.id, OWNER_ID, {"limit": 10})

        result = await db_session.execute(
            select(Entitlement.limit).where(Entitlement.test_id == test.id)
        )
        assert set(result.scalars()) == {10}


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_removes_everything_hanging_off_the_test(self, seed, service, db_session, languages):
        test = await service.create_test(OWNER_ID, TestKind.QUIZ, names(en="Doomed"))
        test_id = test.id
        await db_session.commit()

        question = await seed.question(V, 5)
        question_set = await seed.question_set(V, [question])
        stored = await db_session.get(Test, test_id)
        await seed.link(stored, question_set)
        await seed.entitlement(7, stored)
        attempt = await seed.attempt(7, stored, AttemptStatus.IN_PROGRESS)
        await seed.answer_logs(attempt, [question])

        await service.delete_test(test_id, OWNER_ID)

        for model, criteria in (
            (Test, Test.id == test_id),
            (Attempt, Attempt.test_id == test_id),
            (Entitlement, Entitlement.test_id == test_id),
            (TestQuestionSetLink, TestQuestionSetLink.test_id == test_id),
            (Translation, Translation.key.like(f"test.{test_id}.%")),
        ):
            count = await db_session.scalar(select(func.count()).select_from(model).where(criteria))
            assert count == 0, model.__tablename__

    @pytest.mark.asyncio
    async def test_only_the_creator_may_delete(self, seed, service):
        test = await seed.test(TestKind.QUIZ)

        with pytest.raises(PermissionDeniedError):
            await service.delete_test(test.id, OWNER_ID + 1)


class TestAttachDetach:
    @pytest.mark.asyncio
    async def test_attach_to_lesson_review(self, seed, service, db_session):
        test = await seed.test(TestKind.LESSON_REVIEW)
        sets = [await seed.question_set(kind) for kind in (V, G, K)]

        added = await service.attach_question_sets(test.id, [s.id for s in sets])

        assert added == [s.id for s in sets]
        assert await linked_ids(db_session, test.id) == [s.id for s in sets]

    @pytest.mark.asyncio
    async def test_rejected_batch_links_nothing(self, seed, service, db_session):
        test = await seed.test(TestKind.LESSON_REVIEW)
        first = await seed.question_set(V)
        second = await seed.question_set(V)
        grammar = await seed.question_set(G)

        with pytest.raises(CompositionViolation):
            await service.attach_question_sets(test.id, [grammar.id, first.id, second.id])

        assert await linked_ids(db_session, test.id) == []

    @pytest.mark.asyncio
    async def test_attach_against_existing_links(self, seed, service):
        test = await seed.test(TestKind.LESSON_REVIEW)
        await seed.link(test, await seed.question_set(V))
        another = await seed.question_set(V)

        with pytest.raises(CompositionViolation) as exc_info:
            await service.attach_question_sets(test.id, [another.id])
        assert exc_info.value.question_set_ids == [another.id]

    @pytest.mark.asyncio
    async def test_unknown_set_ids(self, seed, service, db_session):
        test = await seed.test(TestKind.QUIZ)
        known = await seed.question_set(V)

        with pytest.raises(QuestionSetNotFoundError) as exc_info:
            await service.attach_question_sets(test.id, [known.id, 9999])

        assert exc_info.value.question_set_ids == [9999]
        assert await linked_ids(db_session, test.id) == []

    @pytest.mark.asyncio
    async def test_attach_to_unknown_test(self, seed, service):
        known = await seed.question_set(V)
        with pytest.raises(TestNotFoundError):
            await service.attach_question_sets(999, [known.id])

    @pytest.mark.asyncio
    async def test_detach(self, seed, service, db_session):
        test = await seed.test(TestKind.QUIZ)
        keep, drop = await seed.question_set(V), await seed.question_set(G)
        await seed.link(test, keep, drop)

        removed = await service.detach_question_sets(test.id, [drop.id])

        assert removed == [drop.id]
        assert await linked_ids(db_session, test.id) == [keep.id]

    @pytest.mark.asyncio
    async def test_detach_unlinked_set(self, seed, service, db_session):
        test = await seed.test(TestKind.QUIZ)
        linked, loose = await seed.question_set(V), await seed.question_set(G)
        await seed.link(test, linked)

        with pytest.raises(QuestionSetNotFoundError) as exc_info:
            await service.detach_question_sets(test.id, [linked.id, loose.id])

        assert exc_info.value.question_set_ids == [loose.id]
        assert await linked_ids(db_session, test.id) == [linked.id]
