"""
Composition rules for Tests.

Every ``TestKind`` maps to exactly one ``CompositionRule`` describing which
QuestionSets it may hold. ``CompositionValidator`` checks a proposed batch
against the sets already linked (attach) or the linked sets against a new
kind (kind change) and raises ``CompositionViolation`` naming the broken
rule and the offending QuestionSet ids. Checks never write; callers only
persist links after the validator has passed.
"""

from __future__ import annotations

import enum
from collections import Counter
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence

from jlpt_backend.assessments.base.models import QuestionSetKind, TestKind
from jlpt_backend.common.error_handling import CompositionViolation
from jlpt_backend.common.logger import app_logger

logger = app_logger.getChild("composition")


class CompositionRuleName(str, enum.Enum):
    DUPLICATE_IN_BATCH = "duplicate_in_batch"
    ALREADY_LINKED = "already_linked"
    KIND_NOT_ALLOWED = "kind_not_allowed"
    DUPLICATE_KIND_IN_BATCH = "duplicate_kind_in_batch"
    KIND_ALREADY_LINKED = "kind_already_linked"
    TOO_MANY_SETS = "too_many_sets"


@dataclass(frozen=True)
class LinkedSet:
    """The part of a QuestionSet the composition rules look at."""
    id: int
    kind: QuestionSetKind


@dataclass(frozen=True)
class CompositionRule:
    """
    Constraints on the QuestionSets a Test kind may hold.

    ``allowed_kinds`` of ``None`` means any kind; ``unique_kinds`` forbids
    two linked sets of the same kind; ``max_sets`` caps the total.
    """
    allowed_kinds: Optional[FrozenSet[QuestionSetKind]] = None
    unique_kinds: bool = False
    max_sets: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.allowed_kinds is None and not self.unique_kinds and self.max_sets is None


OPEN_RULE = CompositionRule()


def suffix_rule(kind: TestKind, max_sets: Optional[int] = None) -> CompositionRule:
    """Rule of a suffix-derived kind: only sets of the kind named by the suffix."""
    derived = kind.derived_question_set_kind
    if derived is None:
        raise ValueError(f"{kind.value} does not name a question set kind")
    return CompositionRule(allowed_kinds=frozenset({derived}), max_sets=max_sets)


COMPOSITION_RULES: Mapping[TestKind, CompositionRule] = {
    TestKind.LESSON_REVIEW: CompositionRule(
        allowed_kinds=frozenset({
            QuestionSetKind.VOCABULARY,
            QuestionSetKind.GRAMMAR,
            QuestionSetKind.KANJI,
        }),
        unique_kinds=True,
        max_sets=3,
    ),
    TestKind.READING: suffix_rule(TestKind.READING),
    TestKind.LISTENING: suffix_rule(TestKind.LISTENING),
    TestKind.SPEAKING: suffix_rule(TestKind.SPEAKING, max_sets=1),
    TestKind.PLACEMENT: OPEN_RULE,
    TestKind.MATCH: OPEN_RULE,
    TestKind.QUIZ: OPEN_RULE,
    TestKind.SUBSCRIPTION: OPEN_RULE,
    TestKind.PRACTICE: OPEN_RULE,
}

_unmapped = set(TestKind) - set(COMPOSITION_RULES)
if _unmapped:
    raise RuntimeError(
        f"Test kinds without a composition rule: {sorted(k.value for k in _unmapped)}"
    )


def rule_for(kind: TestKind) -> CompositionRule:
    return COMPOSITION_RULES[kind]


def _kind_list(kinds: Iterable[QuestionSetKind]) -> List[str]:
    return sorted(k.value for k in kinds)


class CompositionValidator:
    """Checks QuestionSet groupings against the composition rule of a Test kind."""

    def check_attach(
        self,
        test_kind: TestKind,
        linked: Sequence[LinkedSet],
        proposed: Sequence[LinkedSet],
    ) -> None:
        """
        Validate attaching ``proposed`` to a Test that already holds ``linked``.

        Raises:
            CompositionViolation: if the combined set breaks the rule
        """
        counts = Counter(item.id for item in proposed)
        repeated = sorted(i for i, n in counts.items() if n > 1)
        if repeated:
            raise CompositionViolation(
                CompositionRuleName.DUPLICATE_IN_BATCH.value, repeated,
                "The same question set appears more than once in the request"
            )

        linked_ids = {item.id for item in linked}
        already = [item.id for item in proposed if item.id in linked_ids]
        if already:
            raise CompositionViolation(
                CompositionRuleName.ALREADY_LINKED.value, already,
                "Question set(s) already linked to this test"
            )

        self._check_rule(test_kind, rule_for(test_kind), linked, proposed)

    def check_kind_change(self, new_kind: TestKind, linked: Sequence[LinkedSet]) -> None:
        """
        Validate that the sets already linked to a Test fit ``new_kind``.

        Raises:
            CompositionViolation: listing the incompatible sets to detach first
        """
        self._check_rule(new_kind, rule_for(new_kind), (), linked)

    def _check_rule(
        self,
        test_kind: TestKind,
        rule: CompositionRule,
        linked: Sequence[LinkedSet],
        proposed: Sequence[LinkedSet],
    ) -> None:
        if rule.is_open:
            return

        details = {"test_kind": test_kind.value}

        if rule.allowed_kinds is not None:
            wrong = [item.id for item in proposed if item.kind not in rule.allowed_kinds]
            if wrong:
                logger.info(f"Rejected sets {wrong} for {test_kind.value}: kind not allowed")
                raise CompositionViolation(
                    CompositionRuleName.KIND_NOT_ALLOWED.value, wrong,
                    f"{test_kind.value} only accepts question sets of kind "
                    f"{', '.join(_kind_list(rule.allowed_kinds))}",
                    details={**details, "allowed_kinds": _kind_list(rule.allowed_kinds)},
                )

        if rule.unique_kinds:
            batch_kinds: Dict[QuestionSetKind, List[int]] = {}
            for item in proposed:
                batch_kinds.setdefault(item.kind, []).append(item.id)
            repeated = sorted(
                i for ids in batch_kinds.values() if len(ids) > 1 for i in ids
            )
            if repeated:
                raise CompositionViolation(
                    CompositionRuleName.DUPLICATE_KIND_IN_BATCH.value, repeated,
                    f"{test_kind.value} accepts at most one question set per kind",
                    details=details,
                )

            existing_kinds = {item.kind for item in linked}
            clashing = [item.id for item in proposed if item.kind in existing_kinds]
            if clashing:
                raise CompositionViolation(
                    CompositionRuleName.KIND_ALREADY_LINKED.value, clashing,
                    f"A question set of the same kind is already linked to this {test_kind.value}",
                    details=details,
                )

        if rule.max_sets is not None and len(linked) + len(proposed) > rule.max_sets:
            raise CompositionViolation(
                CompositionRuleName.TOO_MANY_SETS.value, [item.id for item in proposed],
                f"{test_kind.value} holds at most {rule.max_sets} question set(s)",
                details={**details, "max_sets": rule.max_sets, "linked": len(linked)},
            )
