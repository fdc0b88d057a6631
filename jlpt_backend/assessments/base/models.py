"""
Base Assessment Models

Closed kind enums used as control-flow discriminants by the composition
rules and sampling strategies, plus the in-memory snapshot types the
sampler works on.
"""

import enum
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field


class QuestionSetKind(str, enum.Enum):
    """Kinds of QuestionSet content."""
    VOCABULARY = "VOCABULARY"
    GRAMMAR = "GRAMMAR"
    KANJI = "KANJI"
    LISTENING = "LISTENING"
    READING = "READING"
    SPEAKING = "SPEAKING"
    GENERAL = "GENERAL"


class TestKind(str, enum.Enum):
    """
    Kinds of Test.

    Kinds ending in ``_TEST`` whose stem names a QuestionSet kind
    (``READING_TEST`` -> ``READING``) are suffix-derived: they only accept
    QuestionSets of that kind.
    """
    __test__ = False

    PLACEMENT = "PLACEMENT_TEST"
    MATCH = "MATCH_TEST"
    QUIZ = "QUIZ_TEST"
    LESSON_REVIEW = "LESSON_REVIEW"
    READING = "READING_TEST"
    LISTENING = "LISTENING_TEST"
    SPEAKING = "SPEAKING_TEST"
    SUBSCRIPTION = "SUBSCRIPTION_TEST"
    PRACTICE = "PRACTICE_TEST"

    @property
    def derived_question_set_kind(self) -> Optional[QuestionSetKind]:
        """QuestionSet kind named by the ``_TEST`` suffix, if any."""
        if not self.value.endswith("_TEST"):
            return None
        stem = self.value[:-len("_TEST")]
        try:
            return QuestionSetKind(stem)
        except ValueError:
            return None


class ContentStatus(str, enum.Enum):
    """Publication status shared by Tests and QuestionSets."""
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class AttemptStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class EntitlementStatus(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    ACTIVE = "ACTIVE"


@dataclass(frozen=True)
class PoolAnswer:
    id: int
    is_correct: bool
    text_key: Optional[str]
    source_text: Optional[str]


@dataclass(frozen=True)
class PoolQuestion:
    """A Question with its Answers in storage order."""
    id: int
    kind: QuestionSetKind
    level: int
    text_key: Optional[str]
    source_text: Optional[str]
    audio_url: Optional[str] = None
    pronunciation: Optional[str] = None
    answers: Tuple[PoolAnswer, ...] = ()


@dataclass(frozen=True)
class PoolQuestionSet:
    """A QuestionSet linked to a Test, with its Questions ordered by position."""
    id: int
    kind: QuestionSetKind
    level: Optional[int]
    questions: Tuple[PoolQuestion, ...] = ()


@dataclass(frozen=True)
class CandidatePool:
    """Snapshot of everything reachable from one Test, in link order."""
    test_id: int
    question_sets: Tuple[PoolQuestionSet, ...] = ()

    def questions(self) -> List[PoolQuestion]:
        """Every reachable Question, once, in first-seen order."""
        seen = set()
        result = []
        for question_set in self.question_sets:
            for question in question_set.questions:
                if question.id not in seen:
                    seen.add(question.id)
                    result.append(question)
        return result


@dataclass
class SampledQuestion:
    """A drawn Question with its Answers in presentation order."""
    question: PoolQuestion
    answers: List[PoolAnswer]


@dataclass
class SampleResult:
    """
    Outcome of one sampling run.

    ``distribution`` holds the counts actually achieved (the API payload),
    ``shortfalls`` how far each bucket fell below its target.
    """
    questions: List[SampledQuestion]
    distribution: Dict[str, int]
    shortfalls: Dict[str, int] = field(default_factory=dict)

    @property
    def is_short(self) -> bool:
        return any(v > 0 for v in self.shortfalls.values())
