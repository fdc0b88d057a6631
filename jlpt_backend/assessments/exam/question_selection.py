"""
Question Selection for JLPT exams

This module provides:
1. Stratified sampling strategies (fixed level distribution, per-kind rounds
   merged into one batch, and a plain level draw)
2. ``QuestionSampler``, which runs a strategy with an injected random source,
   applies the strategy's shortfall policy and shuffles each answer list
3. The exhaustive mapping from Test kind to session strategy

All randomness flows through the ``random.Random`` handed to the sampler, so a
seeded source replays the same batch.
"""

from __future__ import annotations

import enum
import random
from abc import ABC, abstractmethod
from typing import Callable, ClassVar, Dict, Final, List, Mapping, Optional, Sequence, Tuple

from jlpt_backend.assessments.base.models import (
    CandidatePool, PoolQuestion, QuestionSetKind, SampledQuestion, SampleResult, TestKind
)
from jlpt_backend.assessments.exam import exam_config
from jlpt_backend.assessments.exam.composition import CompositionRuleName
from jlpt_backend.common.error_handling import (
    CompositionViolation, InsufficientContentError, JLPTError, ValidationError
)
from jlpt_backend.common.logger import app_logger, log_execution_time
from jlpt_backend.common.sampling import shuffled, take_random

logger = app_logger.getChild("question_selection")

Distribution = Dict[str, int]
Shortfalls = Dict[str, int]
Draw = Tuple[List[PoolQuestion], Distribution, Shortfalls]

ELIGIBLE_PLACEMENT_KINDS: Final[frozenset] = frozenset(exam_config.LESSON_REVIEW_KINDS)


class ShortfallPolicy(str, enum.Enum):
    """What a strategy does when its candidate pool cannot meet the target."""
    DEGRADE = "degrade"  # return what exists, log the shortfall
    FAIL = "fail"        # raise InsufficientContentError


class SamplingStrategy(ABC):
    """
    A way of drawing a question batch from a candidate pool.

    ``draw`` returns the drawn questions in final order, the achieved counts
    and the per-bucket shortfall; it must not touch answer order.
    """

    name: ClassVar[str]

    def __init__(self, shortfall_policy: ShortfallPolicy):
        self.shortfall_policy = shortfall_policy

    @abstractmethod
    def draw(self, pool: CandidatePool, rng: random.Random) -> Draw:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(policy={self.shortfall_policy.value})"


class FixedDistributionStrategy(SamplingStrategy):
    """
    Placement sampling: a fixed number of questions per level.

    Candidates are the Questions reachable through linked sets of an eligible
    kind. Each level bucket is drawn without replacement; the concatenation is
    shuffled again so level adjacency does not leak into the output order.
    """

    name = "fixed_distribution"

    def __init__(
        self,
        targets: Mapping[int, int] = exam_config.PLACEMENT_DISTRIBUTION,
        eligible_kinds: frozenset = ELIGIBLE_PLACEMENT_KINDS,
        shortfall_policy: ShortfallPolicy = ShortfallPolicy.DEGRADE,
    ):
        super().__init__(shortfall_policy)
        self.targets = dict(targets)
        self.eligible_kinds = frozenset(eligible_kinds)

    def draw(self, pool: CandidatePool, rng: random.Random) -> Draw:
        buckets: Dict[int, List[PoolQuestion]] = {level: [] for level in self.targets}
        seen = set()
        for question_set in pool.question_sets:
            if question_set.kind not in self.eligible_kinds:
                continue
            for question in question_set.questions:
                if question.id in seen or question.level not in buckets:
                    continue
                seen.add(question.id)
                buckets[question.level].append(question)

        drawn: List[PoolQuestion] = []
        distribution: Distribution = {}
        shortfalls: Shortfalls = {}
        for level, target in self.targets.items():
            picked = take_random(buckets[level], target, rng)
            drawn.extend(picked)
            distribution[f"level{level}"] = len(picked)
            if len(picked) < target:
                shortfalls[f"level{level}"] = target - len(picked)

        distribution["total"] = len(drawn)
        return shuffled(drawn, rng), distribution, shortfalls


class RoundMergeStrategy(SamplingStrategy):
    """
    Lesson-review sampling: one round per kind, then a merged draw.

    Exactly one linked set per kind is required. From each, questions of the
    matching kind are shuffled and up to ``per_kind`` kept; the merged pool is
    shuffled and cut to ``total``. A missing kind always fails, whatever the
    shortfall policy.
    """

    name = "round_merge"

    def __init__(
        self,
        kinds: Sequence[QuestionSetKind] = exam_config.LESSON_REVIEW_KINDS,
        per_kind: int = exam_config.LESSON_REVIEW_PER_KIND,
        total: int = exam_config.LESSON_REVIEW_TOTAL,
        shortfall_policy: ShortfallPolicy = ShortfallPolicy.FAIL,
    ):
        super().__init__(shortfall_policy)
        self.kinds = tuple(kinds)
        self.per_kind = per_kind
        self.total = total

    def draw(self, pool: CandidatePool, rng: random.Random) -> Draw:
        sets_by_kind: Dict[QuestionSetKind, List[int]] = {}
        questions_by_kind: Dict[QuestionSetKind, Tuple[PoolQuestion, ...]] = {}
        for question_set in pool.question_sets:
            if question_set.kind in self.kinds:
                sets_by_kind.setdefault(question_set.kind, []).append(question_set.id)
                questions_by_kind[question_set.kind] = question_set.questions

        missing = [kind.value for kind in self.kinds if kind not in sets_by_kind]
        if missing:
            raise InsufficientContentError(
                f"Test {pool.test_id} has no question set for: {', '.join(missing)}",
                details={"missing_kinds": missing, "test_id": pool.test_id},
            )

        repeated = sorted(i for ids in sets_by_kind.values() if len(ids) > 1 for i in ids)
        if repeated:
            raise CompositionViolation(
                CompositionRuleName.DUPLICATE_KIND_IN_BATCH.value, repeated,
                f"Test {pool.test_id} holds more than one question set of the same kind",
            )

        candidates: List[PoolQuestion] = []
        for kind in self.kinds:
            matching = [q for q in questions_by_kind[kind] if q.kind == kind]
            candidates.extend(take_random(matching, self.per_kind, rng))

        selected = take_random(candidates, self.total, rng)

        distribution: Distribution = {kind.value.lower(): 0 for kind in self.kinds}
        for question in selected:
            distribution[question.kind.value.lower()] += 1
        distribution["total"] = len(selected)

        shortfalls: Shortfalls = {}
        if len(selected) < self.total:
            shortfalls["total"] = self.total - len(selected)
        return selected, distribution, shortfalls


class LevelDrawStrategy(SamplingStrategy):
    """Generic draw: ``count`` random questions of one level, any kind."""

    name = "level_draw"

    def __init__(
        self,
        level: int,
        count: int,
        shortfall_policy: ShortfallPolicy = ShortfallPolicy.DEGRADE,
    ):
        super().__init__(shortfall_policy)
        if not exam_config.MIN_LEVEL <= level <= exam_config.MAX_LEVEL:
            raise ValidationError(
                f"level must be between {exam_config.MIN_LEVEL} and {exam_config.MAX_LEVEL}",
                details={"level": level},
            )
        if count < 1:
            raise ValidationError("count must be a positive integer", details={"count": count})
        self.level = level
        self.count = count

    def draw(self, pool: CandidatePool, rng: random.Random) -> Draw:
        candidates = [q for q in pool.questions() if q.level == self.level]
        picked = take_random(candidates, self.count, rng)
        distribution: Distribution = {"levelN": self.level, "count": len(picked)}
        shortfalls: Shortfalls = {}
        if len(picked) < self.count:
            shortfalls["count"] = self.count - len(picked)
        return picked, distribution, shortfalls


class QuestionSampler:
    """Runs sampling strategies against a candidate pool with one random source."""

    def __init__(self, rng: random.Random):
        self.rng = rng

    @log_execution_time(logger, expected=(JLPTError,))
    def sample(self, pool: CandidatePool, strategy: SamplingStrategy) -> SampleResult:
        """
        Draw a batch from ``pool`` and shuffle each question's answers.

        Raises:
            InsufficientContentError: the pool is short and the strategy's
                policy is ``FAIL``, or a required kind is missing
        """
        questions, distribution, shortfalls = strategy.draw(pool, self.rng)

        if shortfalls:
            if strategy.shortfall_policy is ShortfallPolicy.FAIL:
                raise InsufficientContentError(
                    f"Not enough questions in test {pool.test_id} for {strategy.name}",
                    details={
                        "test_id": pool.test_id,
                        "distribution": distribution,
                        "shortfalls": shortfalls,
                    },
                )
            logger.warning(
                f"{strategy.name} short for test {pool.test_id}: "
                f"shortfalls={shortfalls} distribution={distribution}"
            )

        sampled = [
            SampledQuestion(question=question, answers=shuffled(question.answers, self.rng))
            for question in questions
        ]
        return SampleResult(questions=sampled, distribution=distribution, shortfalls=shortfalls)


def placement_strategy() -> SamplingStrategy:
    return FixedDistributionStrategy()


def lesson_review_strategy() -> SamplingStrategy:
    return RoundMergeStrategy()


SESSION_STRATEGIES: Mapping[TestKind, Optional[Callable[[], SamplingStrategy]]] = {
    TestKind.PLACEMENT: placement_strategy,
    TestKind.LESSON_REVIEW: lesson_review_strategy,
    TestKind.MATCH: None,
    TestKind.QUIZ: None,
    TestKind.READING: None,
    TestKind.LISTENING: None,
    TestKind.SPEAKING: None,
    TestKind.SUBSCRIPTION: None,
    TestKind.PRACTICE: None,
}

_unmapped = set(TestKind) - set(SESSION_STRATEGIES)
if _unmapped:
    raise RuntimeError(
        f"Test kinds without a session strategy entry: {sorted(k.value for k in _unmapped)}"
    )


def session_strategy_for(kind: TestKind) -> SamplingStrategy:
    """Strategy used when a session of ``kind`` starts."""
    factory = SESSION_STRATEGIES[kind]
    if factory is None:
        raise ValidationError(
            f"Tests of kind {kind.value} do not support sampled sessions",
            details={"kind": kind.value},
        )
    return factory()
