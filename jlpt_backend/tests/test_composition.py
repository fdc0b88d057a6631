"""
Tests for the Test composition rules.
"""

import pytest

from jlpt_backend.assessments.base.models import QuestionSetKind, TestKind
from jlpt_backend.assessments.exam.composition import (
    COMPOSITION_RULES, CompositionRuleName, CompositionValidator, LinkedSet, rule_for
)
from jlpt_backend.common.error_handling import CompositionViolation

V = QuestionSetKind.VOCABULARY
G = QuestionSetKind.GRAMMAR
K = QuestionSetKind.KANJI
R = QuestionSetKind.READING
S = QuestionSetKind.SPEAKING


@pytest.fixture
def validator():
    return CompositionValidator()


def test_every_test_kind_has_a_rule():
    assert set(COMPOSITION_RULES) == set(TestKind)


def test_suffix_kinds_derive_their_question_set_kind():
    assert TestKind.READING.derived_question_set_kind is QuestionSetKind.READING
    assert TestKind.LISTENING.derived_question_set_kind is QuestionSetKind.LISTENING
    assert TestKind.SPEAKING.derived_question_set_kind is QuestionSetKind.SPEAKING
    assert TestKind.PLACEMENT.derived_question_set_kind is None
    assert TestKind.LESSON_REVIEW.derived_question_set_kind is None


def test_lesson_review_accepts_one_set_per_kind(validator):
    validator.check_attach(
        TestKind.LESSON_REVIEW, [], [LinkedSet(1, V), LinkedSet(2, G), LinkedSet(3, K)]
    )


def test_lesson_review_rejects_duplicate_kind_in_batch(validator):
    with pytest.raises(CompositionViolation) as exc_info:
        validator.check_attach(TestKind.LESSON_REVIEW, [], [LinkedSet(1, V), LinkedSet(2, V)])

    assert exc_info.value.rule == CompositionRuleName.DUPLICATE_KIND_IN_BATCH.value
    assert exc_info.value.question_set_ids == [1, 2]


def test_lesson_review_rejects_kind_already_linked(validator):
    with pytest.raises(CompositionViolation) as exc_info:
        validator.check_attach(TestKind.LESSON_REVIEW, [LinkedSet(1, V)], [LinkedSet(2, V)])

    assert exc_info.value.rule == CompositionRuleName.KIND_ALREADY_LINKED.value
    assert exc_info.value.question_set_ids == [2]


def test_lesson_review_rejects_other_kinds(validator):
    with pytest.raises(CompositionViolation) as exc_info:
        validator.check_attach(TestKind.LESSON_REVIEW, [], [LinkedSet(1, V), LinkedSet(7, R)])

    assert exc_info.value.rule == CompositionRuleName.KIND_NOT_ALLOWED.value
    assert exc_info.value.question_set_ids == [7]
    assert exc_info.value.details["allowed_kinds"] == ["GRAMMAR", "KANJI", "VOCABULARY"]


def test_reading_test_only_accepts_reading_sets(validator):
    validator.check_attach(TestKind.READING, [LinkedSet(1, R)], [LinkedSet(2, R), LinkedSet(3, R)])

    with pytest.raises(CompositionViolation) as exc_info:
        validator.check_attach(TestKind.READING, [], [LinkedSet(4, R), LinkedSet(5, V)])
    assert exc_info.value.question_set_ids == [5]


def test_speaking_test_holds_a_single_set(validator):
    validator.check_attach(TestKind.SPEAKING, [], [LinkedSet(1, S)])

    with pytest.raises(CompositionViolation) as exc_info:
        validator.check_attach(TestKind.SPEAKING, [LinkedSet(1, S)], [LinkedSet(2, S)])
    assert exc_info.value.rule == CompositionRuleName.TOO_MANY_SETS.value
    assert exc_info.value.details["max_sets"] == 1


@pytest.mark.parametrize("kind", [TestKind.PLACEMENT, TestKind.QUIZ, TestKind.PRACTICE])
def test_open_kinds_accept_any_mix(validator, kind):
    assert rule_for(kind).is_open
    validator.check_attach(kind, [LinkedSet(1, V)], [LinkedSet(2, V), LinkedSet(3, R)])


def test_same_set_twice_in_batch_is_rejected(validator):
    with pytest.raises(CompositionViolation) as exc_info:
        validator.check_attach(TestKind.QUIZ, [], [LinkedSet(4, V), LinkedSet(4, V)])

    assert exc_info.value.rule == CompositionRuleName.DUPLICATE_IN_BATCH.value
    assert exc_info.value.question_set_ids == [4]


def test_already_linked_set_is_rejected(validator):
    with pytest.raises(CompositionViolation) as exc_info:
        validator.check_attach(TestKind.QUIZ, [LinkedSet(4, V)], [LinkedSet(4, V)])

    assert exc_info.value.rule == CompositionRuleName.ALREADY_LINKED.value


def test_kind_change_lists_incompatible_linked_sets(validator):
    linked = [LinkedSet(1, R), LinkedSet(2, V), LinkedSet(3, R)]

    with pytest.raises(CompositionViolation) as exc_info:
        validator.check_kind_change(TestKind.READING, linked)

    assert exc_info.value.rule == CompositionRuleName.KIND_NOT_ALLOWED.value
    assert exc_info.value.question_set_ids == [2]


def test_kind_change_to_lesson_review_checks_unique_kinds(validator):
    with pytest.raises(CompositionViolation) as exc_info:
        validator.check_kind_change(TestKind.LESSON_REVIEW, [LinkedSet(1, V), LinkedSet(2, V)])

    assert exc_info.value.rule == CompositionRuleName.DUPLICATE_KIND_IN_BATCH.value


def test_kind_change_to_open_kind_always_passes(validator):
    validator.check_kind_change(TestKind.MATCH, [LinkedSet(1, R), LinkedSet(2, R)])
