"""
Base Assessment Architecture

Kind enums and the content snapshot types shared by the composition rules,
the question sampler and the session manager.
"""

from jlpt_backend.assessments.base.models import (
    AttemptStatus,
    CandidatePool,
    ContentStatus,
    EntitlementStatus,
    PoolAnswer,
    PoolQuestion,
    PoolQuestionSet,
    QuestionSetKind,
    SampledQuestion,
    SampleResult,
    TestKind,
)

__all__ = [
    'AttemptStatus',
    'CandidatePool',
    'ContentStatus',
    'EntitlementStatus',
    'PoolAnswer',
    'PoolQuestion',
    'PoolQuestionSet',
    'QuestionSetKind',
    'SampledQuestion',
    'SampleResult',
    'TestKind',
]
