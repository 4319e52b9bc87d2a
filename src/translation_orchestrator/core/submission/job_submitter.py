"""
Job Submitter - Builds translation job requests and issues them to the
translation service. Submission is not idempotent: every call creates a
new billable job.
"""

import logging
import posixpath
from typing import Optional

from ..exceptions import SubmissionError
from ..schemas.job import ContentKind
from ..translation.job_service import JobService

logger = logging.getLogger(__name__)


SUFFIX_KINDS = {
    ".pdf": ContentKind.PDF,
    ".docx": ContentKind.DOCX,
    ".pptx": ContentKind.PPTX,
    ".xlsx": ContentKind.XLSX,
    ".html": ContentKind.HTML,
    ".htm": ContentKind.HTML,
    ".txt": ContentKind.TEXT,
    ".xlf": ContentKind.XLIFF,
    ".xliff": ContentKind.XLIFF,
}

CONTENT_TYPES = {
    ContentKind.PDF: "application/pdf",
    ContentKind.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ContentKind.PPTX: "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ContentKind.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ContentKind.HTML: "text/html",
    ContentKind.TEXT: "text/plain",
    ContentKind.XLIFF: "application/x-xliff+xml",
}


def infer_content_kind(key: str) -> ContentKind:
    """Infer the document kind from the key's filename suffix."""
    suffix = posixpath.splitext(key)[1].lower()
    return SUFFIX_KINDS.get(suffix, ContentKind.UNKNOWN)


def content_type_hint(kind: ContentKind) -> Optional[str]:
    """MIME type to send for a document kind; None lets the service detect it."""
    return CONTENT_TYPES.get(kind)


def s3_uri(bucket_name: str, key: str) -> str:
    return f"s3://{bucket_name}/{key}"


class JobSubmitter:
    """
    Issues translation jobs for objects in the shared bucket.
    """

    def __init__(self, job_service: JobService, bucket_name: str,
                 output_prefix: str, access_role_ref: str):
        self.job_service = job_service
        self.bucket_name = bucket_name
        self.output_prefix = output_prefix
        self.access_role_ref = access_role_ref

    async def submit(self, source_key: str, target_language: str) -> str:
        """
        Submit a translation job.

        Args:
            source_key: Object key of the input document
            target_language: Target language code

        Returns:
            Job identifier

        Raises:
            SubmissionError: if the service rejects the job or returns no identifier
        """
        if not source_key:
            raise SubmissionError("No input document selected")
        if not target_language:
            raise SubmissionError("No target language selected")

        kind = infer_content_kind(source_key)
        hint = content_type_hint(kind)
        logger.info(
            f"Submitting {source_key} ({kind.value}) for translation to {target_language}"
        )

        job_id = await self.job_service.start_job(
            input_location=s3_uri(self.bucket_name, source_key),
            output_location_prefix=s3_uri(self.bucket_name, self.output_prefix),
            target_language=target_language,
            content_type_hint=hint,
            access_role_ref=self.access_role_ref,
        )
        if not job_id:
            raise SubmissionError("Translation service returned no job identifier")

        logger.info(f"Submitted job {job_id} for {source_key}")
        return job_id
