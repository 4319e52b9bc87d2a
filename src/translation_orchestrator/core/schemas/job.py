from enum import Enum
from typing import Optional, List
from datetime import datetime, timezone
from pydantic import BaseModel, Field

from ..exceptions import InvalidTransitionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class ContentKind(str, Enum):
    PDF = "pdf"
    DOCX = "docx"
    PPTX = "pptx"
    XLSX = "xlsx"
    HTML = "html"
    TEXT = "text"
    XLIFF = "xliff"
    UNKNOWN = "unknown"


class SessionPhase(str, Enum):
    IDLE = "idle"
    PREFLIGHTING = "preflighting"
    SUBMITTING = "submitting"
    POLLING = "polling"
    RESOLVING = "resolving"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionPhase.DONE, SessionPhase.FAILED)


# Rough progress shown to the presentation layer per phase
PHASE_PROGRESS = {
    SessionPhase.IDLE: 0,
    SessionPhase.PREFLIGHTING: 10,
    SessionPhase.SUBMITTING: 25,
    SessionPhase.POLLING: 50,
    SessionPhase.RESOLVING: 90,
    SessionPhase.DONE: 100,
    SessionPhase.FAILED: 100,
}


class JobDescription(BaseModel):
    """Raw describe result from the translation service."""
    job_id: str
    status: str
    target_languages: List[str] = Field(default_factory=list)
    failure_message: Optional[str] = None
    output_location: Optional[str] = None


class ResultDescriptor(BaseModel):
    output_key: str
    display_name: str


class TranslationJob(BaseModel):
    job_id: str = Field(..., frozen=True)
    source_key: str = Field(..., frozen=True)
    target_language: str = Field(..., frozen=True)
    content_kind: ContentKind = Field(ContentKind.UNKNOWN, frozen=True)
    status: JobStatus = JobStatus.SUBMITTED
    output_key: Optional[str] = None
    reported_output_location: Optional[str] = None
    failure_message: Optional[str] = None
    submitted_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def update_status(self, status: JobStatus, failure_message: Optional[str] = None) -> bool:
        """
        Apply an observed status. Terminal states never regress.

        Returns:
            True if the job status changed
        """
        if self.status.is_terminal:
            return False
        if status == JobStatus.SUBMITTED and self.status == JobStatus.PROCESSING:
            return False
        if status == self.status:
            return False

        self.status = status
        if status.is_terminal:
            self.completed_at = utcnow()
        if status == JobStatus.FAILED:
            self.failure_message = failure_message
        return True

    def mark_resolved(self, output_key: str):
        """Record the confirmed output location."""
        if self.status != JobStatus.SUCCEEDED:
            raise InvalidTransitionError(
                f"Job {self.job_id} cannot be resolved in status {self.status.value}"
            )
        self.output_key = output_key


class SessionSnapshot(BaseModel):
    """One observable state of an orchestration session."""
    session_id: str
    generation: int
    phase: SessionPhase
    progress_hint: int
    message: Optional[str] = None
    job_id: Optional[str] = None
    target_language: Optional[str] = None
    result: Optional[ResultDescriptor] = None
    error: Optional[str] = None
    error_stage: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)
