"""
Tests for the question sampling strategies and the sampler.

Pools are built in memory; a fixed seed keeps every draw reproducible.
"""

import random
from collections import Counter
from itertools import count

import pytest

from jlpt_backend.assessments.base.models import (
    CandidatePool, PoolAnswer, PoolQuestion, PoolQuestionSet, QuestionSetKind, TestKind
)
from jlpt_backend.assessments.exam.question_selection import (
    SESSION_STRATEGIES, FixedDistributionStrategy, LevelDrawStrategy, QuestionSampler,
    RoundMergeStrategy, ShortfallPolicy, session_strategy_for
)
from jlpt_backend.common.error_handling import (
    CompositionViolation, InsufficientContentError, ValidationError
)
from jlpt_backend.common.sampling import make_random_source, shuffled, take_random

V = QuestionSetKind.VOCABULARY
G = QuestionSetKind.GRAMMAR
K = QuestionSetKind.KANJI

_ids = count(1)


def make_question(kind, level, answers=4):
    question_id = next(_ids)
    return PoolQuestion(
        id=question_id,
        kind=kind,
        level=level,
        text_key=None,
        source_text=f"q{question_id}",
        answers=tuple(
            PoolAnswer(id=question_id * 100 + i, is_correct=(i == 0), text_key=None, source_text=f"a{i}")
            for i in range(answers)
        ),
    )


def make_set(kind, questions, set_id=None):
    return PoolQuestionSet(id=set_id or next(_ids), kind=kind, level=None, questions=tuple(questions))


def level_set(kind, levels):
    return make_set(kind, [make_question(kind, level) for level in levels])


def pool_of(*question_sets):
    return CandidatePool(test_id=1, question_sets=tuple(question_sets))


@pytest.fixture
def sampler():
    return QuestionSampler(random.Random(7))


class TestSamplingHelpers:
    def test_shuffled_leaves_input_untouched(self):
        items = list(range(20))
        result = shuffled(items, random.Random(3))

        assert items == list(range(20))
        assert sorted(result) == items

    def test_take_random_draws_without_replacement(self):
        result = take_random(range(10), 4, random.Random(3))

        assert len(result) == 4
        assert len(set(result)) == 4

    def test_take_random_short_input_returns_everything(self):
        assert sorted(take_random([1, 2, 3], 10, random.Random(3))) == [1, 2, 3]

    def test_take_random_non_positive_count(self):
        assert take_random([1, 2, 3], 0, random.Random(3)) == []

    def test_same_seed_replays_the_same_draw(self):
        first = take_random(range(100), 10, make_random_source(42))
        second = take_random(range(100), 10, make_random_source(42))
        assert first == second


class TestPlacementSampling:
    def test_full_pool_hits_the_fixed_distribution(self, sampler):
        pool = pool_of(
            level_set(V, [5] * 6 + [4] * 6),
            level_set(G, [3] * 6 + [2] * 4),
            level_set(K, [4] * 3 + [1] * 2),
        )

        result = sampler.sample(pool, FixedDistributionStrategy())

        levels = Counter(item.question.level for item in result.questions)
        assert levels == {5: 3, 4: 4, 3: 3}
        assert result.distribution == {"level5": 3, "level4": 4, "level3": 3, "total": 10}
        assert not result.is_short

    def test_short_levels_degrade(self, sampler):
        pool = pool_of(level_set(V, [5, 5, 4]))

        result = sampler.sample(pool, FixedDistributionStrategy())

        assert result.distribution == {"level5": 2, "level4": 1, "level3": 0, "total": 3}
        assert result.shortfalls == {"level5": 1, "level4": 3, "level3": 3}
        assert len(result.questions) == 3

    def test_fail_policy_raises_on_shortfall(self, sampler):
        strategy = FixedDistributionStrategy(shortfall_policy=ShortfallPolicy.FAIL)

        with pytest.raises(InsufficientContentError) as exc_info:
            sampler.sample(pool_of(level_set(V, [5])), strategy)
        assert exc_info.value.details["shortfalls"]["level4"] == 4

    def test_only_vocabulary_grammar_kanji_sets_count(self, sampler):
        pool = pool_of(
            level_set(QuestionSetKind.READING, [5] * 5),
            level_set(QuestionSetKind.LISTENING, [4] * 5),
        )

        result = sampler.sample(pool, FixedDistributionStrategy())

        assert result.questions == []
        assert result.distribution["total"] == 0

    def test_question_in_two_sets_is_drawn_once(self, sampler):
        shared = [make_question(V, 5) for _ in range(3)]
        pool = pool_of(make_set(V, shared), make_set(G, shared))

        result = sampler.sample(pool, FixedDistributionStrategy())

        ids = [item.question.id for item in result.questions]
        assert len(ids) == len(set(ids)) == 3


class TestLessonReviewSampling:
    def test_ten_questions_from_three_kinds(self, sampler):
        pool = pool_of(level_set(V, [5] * 8), level_set(G, [5] * 8), level_set(K, [5] * 8))

        result = sampler.sample(pool, RoundMergeStrategy())

        assert len(result.questions) == 10
        assert result.distribution["total"] == 10
        assert sum(result.distribution[k] for k in ("vocabulary", "grammar", "kanji")) == 10
        kinds = Counter(item.question.kind for item in result.questions)
        assert all(n <= 5 for n in kinds.values())

    def test_small_rounds_fail(self, sampler):
        pool = pool_of(level_set(V, [5] * 3), level_set(G, [5] * 3), level_set(K, [5] * 3))

        with pytest.raises(InsufficientContentError) as exc_info:
            sampler.sample(pool, RoundMergeStrategy())
        assert exc_info.value.details["shortfalls"] == {"total": 1}

    def test_small_rounds_degrade_when_asked(self, sampler):
        pool = pool_of(level_set(V, [5] * 3), level_set(G, [5] * 3), level_set(K, [5] * 3))
        strategy = RoundMergeStrategy(shortfall_policy=ShortfallPolicy.DEGRADE)

        result = sampler.sample(pool, strategy)

        assert len(result.questions) == 9
        assert result.distribution == {"vocabulary": 3, "grammar": 3, "kanji": 3, "total": 9}

    def test_missing_kind_fails(self, sampler):
        pool = pool_of(level_set(V, [5] * 8), level_set(G, [5] * 8))

        with pytest.raises(InsufficientContentError) as exc_info:
            sampler.sample(pool, RoundMergeStrategy(shortfall_policy=ShortfallPolicy.DEGRADE))
        assert exc_info.value.details["missing_kinds"] == ["KANJI"]

    def test_two_sets_of_one_kind_is_a_composition_violation(self, sampler):
        first, second = level_set(V, [5] * 5), level_set(V, [5] * 5)
        pool = pool_of(first, second, level_set(G, [5] * 5), level_set(K, [5] * 5))

        with pytest.raises(CompositionViolation) as exc_info:
            sampler.sample(pool, RoundMergeStrategy())
        assert exc_info.value.question_set_ids == sorted([first.id, second.id])

    def test_questions_of_other_kinds_are_skipped(self, sampler):
        vocabulary = make_set(V, [make_question(V, 5) for _ in range(5)] + [make_question(G, 5)])
        pool = pool_of(vocabulary, level_set(G, [5] * 5), level_set(K, [5] * 5))

        result = sampler.sample(pool, RoundMergeStrategy())

        stray = vocabulary.questions[-1].id
        assert stray not in {item.question.id for item in result.questions}


class TestLevelDraw:
    def test_draws_only_the_requested_level(self, sampler):
        pool = pool_of(level_set(V, [2] * 4 + [3] * 4), level_set(QuestionSetKind.READING, [2] * 2))

        result = sampler.sample(pool, LevelDrawStrategy(level=2, count=5))

        assert len(result.questions) == 5
        assert {item.question.level for item in result.questions} == {2}
        assert result.distribution == {"levelN": 2, "count": 5}

    def test_short_pool_returns_what_exists(self, sampler):
        result = sampler.sample(pool_of(level_set(V, [1, 1])), LevelDrawStrategy(level=1, count=5))

        assert len(result.questions) == 2
        assert result.shortfalls == {"count": 3}

    @pytest.mark.parametrize("level, count", [(0, 1), (6, 1), (3, 0)])
    def test_rejects_bad_arguments(self, level, count):
        with pytest.raises(ValidationError):
            LevelDrawStrategy(level=level, count=count)


class TestSampler:
    def test_answers_are_shuffled_but_complete(self, sampler):
        pool = pool_of(level_set(V, [1] * 10))

        result = sampler.sample(pool, LevelDrawStrategy(level=1, count=10))

        reordered = 0
        for item in result.questions:
            assert {a.id for a in item.answers} == {a.id for a in item.question.answers}
            if [a.id for a in item.answers] != [a.id for a in item.question.answers]:
                reordered += 1
        assert reordered > 0

    def test_seeded_sampler_is_reproducible(self):
        pool = pool_of(level_set(V, [5] * 6 + [4] * 6 + [3] * 6))

        first = QuestionSampler(random.Random(11)).sample(pool, FixedDistributionStrategy())
        second = QuestionSampler(random.Random(11)).sample(pool, FixedDistributionStrategy())

        assert [q.question.id for q in first.questions] == [q.question.id for q in second.questions]
        assert [[a.id for a in q.answers] for q in first.questions] == \
            [[a.id for a in q.answers] for q in second.questions]


class TestSessionStrategies:
    def test_every_test_kind_is_mapped(self):
        assert set(SESSION_STRATEGIES) == set(TestKind)

    def test_placement_and_lesson_review_strategies(self):
        assert isinstance(session_strategy_for(TestKind.PLACEMENT), FixedDistributionStrategy)
        assert isinstance(session_strategy_for(TestKind.LESSON_REVIEW), RoundMergeStrategy)

    def test_kinds_without_sessions_are_rejected(self):
        with pytest.raises(ValidationError):
            session_strategy_for(TestKind.READING)
