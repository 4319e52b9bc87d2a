from .job import (
    JobStatus, ContentKind, SessionPhase, JobDescription,
    ResultDescriptor, TranslationJob, SessionSnapshot, PHASE_PROGRESS
)

__all__ = [
    'JobStatus',
    'ContentKind',
    'SessionPhase',
    'JobDescription',
    'ResultDescriptor',
    'TranslationJob',
    'SessionSnapshot',
    'PHASE_PROGRESS'
]
