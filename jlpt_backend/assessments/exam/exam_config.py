"""
Exam Configuration Module

Sampling targets and limits for the JLPT exam strategies.
"""

from typing import Final, Mapping, Tuple

from jlpt_backend.assessments.base.models import QuestionSetKind

__version__: Final[str] = "1.0.0"

# Placement: questions drawn per JLPT level (N5 is the easiest)
PLACEMENT_DISTRIBUTION: Final[Mapping[int, int]] = {5: 3, 4: 4, 3: 3}

# Lesson review: kinds drawn round by round, then merged
LESSON_REVIEW_KINDS: Final[Tuple[QuestionSetKind, ...]] = (
    QuestionSetKind.VOCABULARY,
    QuestionSetKind.GRAMMAR,
    QuestionSetKind.KANJI,
)
LESSON_REVIEW_PER_KIND: Final[int] = 5
LESSON_REVIEW_TOTAL: Final[int] = 10

# Generic level draw
MIN_LEVEL: Final[int] = 1
MAX_LEVEL: Final[int] = 5

# Translation keys
TEST_NAME_KEY: Final[str] = "test.{test_id}.name"
TEST_DESCRIPTION_KEY: Final[str] = "test.{test_id}.description"
