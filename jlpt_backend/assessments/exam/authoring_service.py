"""
Test authoring service.

Creates, updates and deletes Tests together with their translations, and
attaches or detaches QuestionSets under the composition rules. Methods only
flush; the caller's unit of work commits or rolls back everything written by
one call, so a rejected batch never leaves partial links or translations.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jlpt_backend.assessments.base.models import ContentStatus, QuestionSetKind, TestKind
from jlpt_backend.assessments.exam import exam_config
from jlpt_backend.assessments.exam.composition import CompositionValidator, LinkedSet
from jlpt_backend.assessments.exam.content_pool import ContentPool
from jlpt_backend.assessments.exam.database_models import QuestionSet, Test
from jlpt_backend.assessments.exam.localization import (
    LocalizationResolver, Localizer, SqlLocalizationResolver
)
from jlpt_backend.assessments.exam.repository import (
    EntitlementRepository, TestRepository, TranslationRepository
)
from jlpt_backend.assessments.exam.schemas import TranslationInput
from jlpt_backend.common.error_handling import (
    PermissionDeniedError, QuestionSetNotFoundError, TestNotFoundError, ValidationError
)
from jlpt_backend.common.logger import app_logger

logger = app_logger.getChild("authoring_service")

_UNSET: Any = object()


def translation_key(test_id: int, field: str) -> str:
    if field == "name":
        return exam_config.TEST_NAME_KEY.format(test_id=test_id)
    return exam_config.TEST_DESCRIPTION_KEY.format(test_id=test_id)


def _linked(question_sets: Sequence[QuestionSet]) -> List[LinkedSet]:
    return [LinkedSet(id=qs.id, kind=QuestionSetKind(qs.kind)) for qs in question_sets]


class TestService:
    """Authoring operations on Tests and their QuestionSet links."""

    __test__ = False

    def __init__(
        self,
        session: AsyncSession,
        validator: Optional[CompositionValidator] = None,
        resolver: Optional[LocalizationResolver] = None
    ):
        self.session = session
        self.tests = TestRepository(session)
        self.translations = TranslationRepository(session)
        self.entitlements = EntitlementRepository(session)
        self.content = ContentPool(session)
        self.validator = validator or CompositionValidator()
        self.resolver = resolver or SqlLocalizationResolver(session)

    async def _require_test(self, test_id: int, for_update: bool = False) -> Test:
        stmt = select(Test).where(Test.id == test_id)
        if for_update:
            # serializes composition checks on the same test
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        test = result.scalar_one_or_none()
        if test is None:
            raise TestNotFoundError(test_id)
        return test

    @staticmethod
    def _require_owner(test: Test, caller_id: int) -> None:
        if test.creator_id != caller_id:
            raise PermissionDeniedError(
                "Only the creator of a test can modify it",
                details={"test_id": test.id}
            )

    async def _write_translations(self, test_id: int, translations: Sequence[TranslationInput]) -> None:
        codes = {item.language_code for item in translations}
        languages = await self.translations.languages_by_code(codes)
        unknown = sorted(codes - set(languages))
        if unknown:
            raise ValidationError(
                f"Unknown language code(s): {', '.join(unknown)}",
                details={"language_codes": unknown}
            )
        for item in translations:
            await self.translations.upsert(
                translation_key(test_id, item.field),
                languages[item.language_code].id,
                item.value
            )

    async def create_test(
        self,
        owner_id: int,
        kind: TestKind,
        translations: Sequence[TranslationInput],
        status: ContentStatus = ContentStatus.DRAFT,
        limit: Optional[int] = None,
    ) -> Test:
        """Create a Test and its name/description translations."""
        if not any(item.field == "name" for item in translations):
            raise ValidationError("A test needs at least one name translation")

        test = await self.tests.add(Test(
            kind=kind.value,
            status=status.value,
            limit=limit,
            creator_id=owner_id,
        ))
        test.name = translation_key(test.id, "name")
        test.description = translation_key(test.id, "description")
        await self._write_translations(test.id, translations)
        await self.session.flush()

        logger.info(f"Created test {test.id} ({kind.value}) for user {owner_id}")
        return test

    async def get_test(self, test_id: int, language: Optional[str] = None) -> Dict[str, Any]:
        test = await self._require_test(test_id)
        localizer = Localizer(self.resolver, language)
        return {
            "id": test.id,
            "kind": test.kind,
            "status": test.status,
            "limit": test.limit,
            "creatorId": test.creator_id,
            "name": await localizer.text(test.name, None),
            "description": await localizer.text(test.description, None),
            "testSetIds": await self.tests.linked_question_set_ids(test.id),
        }

    async def update_test(
        self,
        test_id: int,
        caller_id: int,
        changes: Mapping[str, Any],
    ) -> Test:
        """
        Apply a partial update.

        ``changes`` holds only the fields present in the request: ``kind``,
        ``status``, ``limit`` and ``translations``. A kind change is checked
        against the sets already linked; a changed limit is copied onto the
        Test's entitlements.
        """
        test = await self._require_test(test_id, for_update=True)
        self._require_owner(test, caller_id)

        new_kind = changes.get("kind", _UNSET)
        if new_kind is not _UNSET and new_kind.value != test.kind:
            linked = await self.content.get_linked_question_sets(test.id)
            self.validator.check_kind_change(new_kind, _linked(linked))
            logger.info(f"Test {test.id} kind {test.kind} -> {new_kind.value}")
            test.kind = new_kind.value

        new_status = changes.get("status", _UNSET)
        if new_status is not _UNSET:
            test.status = new_status.value

        new_limit = changes.get("limit", _UNSET)
        if new_limit is not _UNSET and new_limit != test.limit:
            test.limit = new_limit
            synced = await self.entitlements.sync_limits(test.id, new_limit)
            logger.info(f"Test {test.id} limit set to {new_limit}; {synced} entitlement(s) synced")

        translations = changes.get("translations")
        if translations:
            await self._write_translations(test.id, translations)

        await self.session.flush()
        return test

    async def delete_test(self, test_id: int, caller_id: int) -> None:
        test = await self._require_test(test_id, for_update=True)
        self._require_owner(test, caller_id)
        await self.tests.delete_cascade(
            test.id,
            [translation_key(test.id, "name"), translation_key(test.id, "description")]
        )
        logger.info(f"Deleted test {test_id}")

    async def attach_question_sets(self, test_id: int, question_set_ids: Sequence[int]) -> List[int]:
        """
        Link QuestionSets to a Test, all or nothing.

        Raises:
            TestNotFoundError: unknown test
            QuestionSetNotFoundError: any id does not resolve
            CompositionViolation: the combined links break the kind's rule
        """
        test = await self._require_test(test_id, for_update=True)
        ids = list(question_set_ids)

        found = await self.content.get_question_sets(ids)
        missing = [i for i in ids if i not in found]
        if missing:
            raise QuestionSetNotFoundError(missing)

        linked = await self.content.get_linked_question_sets(test.id)
        self.validator.check_attach(
            TestKind(test.kind),
            _linked(linked),
            [LinkedSet(id=i, kind=QuestionSetKind(found[i].kind)) for i in ids],
        )

        await self.tests.add_links(test.id, ids)
        logger.info(f"Attached question sets {ids} to test {test.id}")
        return ids

    async def detach_question_sets(self, test_id: int, question_set_ids: Sequence[int]) -> List[int]:
        """Unlink QuestionSets; ids not linked to the test are a NotFound."""
        test = await self._require_test(test_id, for_update=True)
        ids = list(dict.fromkeys(question_set_ids))

        linked = set(await self.tests.linked_question_set_ids(test.id))
        not_linked = [i for i in ids if i not in linked]
        if not_linked:
            raise QuestionSetNotFoundError(
                not_linked, message=f"Question set(s) {not_linked} are not linked to test {test.id}"
            )

        await self.tests.remove_links(test.id, ids)
        logger.info(f"Detached question sets {ids} from test {test.id}")
        return ids
