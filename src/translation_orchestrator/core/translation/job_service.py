"""
Job Service - Interfaces with the asynchronous document translation service.
Submits batch translation jobs and describes their status.
"""

import asyncio
import logging
import uuid
from typing import Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import PollTransportError, SubmissionError
from ..executor import run_blocking
from ..schemas.job import JobDescription

logger = logging.getLogger(__name__)

# The batch API requires a content type; used when the caller sends no hint
DEFAULT_CONTENT_TYPE = "text/plain"


class JobService(Protocol):
    """Translation service operations consumed by the orchestration core."""

    async def start_job(self, input_location: str, output_location_prefix: str,
                        target_language: str, content_type_hint: Optional[str],
                        access_role_ref: str) -> str:
        ...

    async def describe_job(self, job_id: str) -> JobDescription:
        ...


def _error_message(error: Exception) -> str:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Message") or str(error)
    return str(error)


class AmazonTranslateJobService:
    """
    Client for Amazon Translate batch (asynchronous) translation jobs.
    """

    def __init__(self, source_language: str = "auto", region_name: Optional[str] = None,
                 timeout: float = 10.0, client=None):
        self.source_language = source_language
        self.timeout = timeout
        self.translate_client = client or boto3.client(
            "translate",
            region_name=region_name,
            config=Config(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"max_attempts": 2, "mode": "standard"},
            ),
        )

    async def start_job(self, input_location: str, output_location_prefix: str,
                        target_language: str, content_type_hint: Optional[str],
                        access_role_ref: str) -> str:
        """
        Start a translation job.

        Args:
            input_location: S3 URI of the input document
            output_location_prefix: S3 URI the service writes results under
            target_language: Target language code
            content_type_hint: MIME type of the input, if known
            access_role_ref: Role the service assumes to access the bucket

        Returns:
            Job identifier assigned by the service

        Raises:
            SubmissionError: if the service rejects the request
        """
        request = {
            "JobName": f"translate-{uuid.uuid4().hex[:12]}",
            "InputDataConfig": {
                "S3Uri": input_location,
                "ContentType": content_type_hint or DEFAULT_CONTENT_TYPE,
            },
            "OutputDataConfig": {"S3Uri": output_location_prefix},
            "DataAccessRoleArn": access_role_ref,
            "SourceLanguageCode": self.source_language,
            "TargetLanguageCodes": [target_language],
            "ClientToken": str(uuid.uuid4()),
        }

        try:
            response = await run_blocking(
                self.translate_client.start_text_translation_job,
                timeout=self.timeout,
                **request,
            )
        except asyncio.TimeoutError as e:
            raise SubmissionError(f"Translation service did not answer within {self.timeout}s") from e
        except (ClientError, BotoCoreError) as e:
            raise SubmissionError(_error_message(e)) from e

        job_id = response.get("JobId")
        if not job_id:
            raise SubmissionError("Translation service returned no job identifier")

        logger.info(f"Started translation job {job_id} ({response.get('JobStatus')})")
        return job_id

    async def describe_job(self, job_id: str) -> JobDescription:
        """
        Describe a translation job.

        Raises:
            PollTransportError: if the status request fails
        """
        try:
            response = await run_blocking(
                self.translate_client.describe_text_translation_job,
                timeout=self.timeout,
                JobId=job_id,
            )
        except asyncio.TimeoutError as e:
            raise PollTransportError(f"Status request for {job_id} timed out") from e
        except (ClientError, BotoCoreError) as e:
            raise PollTransportError(_error_message(e)) from e

        properties = response.get("TextTranslationJobProperties", {})
        return JobDescription(
            job_id=properties.get("JobId", job_id),
            status=properties.get("JobStatus", ""),
            target_languages=properties.get("TargetLanguageCodes", []),
            failure_message=properties.get("Message"),
            output_location=properties.get("OutputDataConfig", {}).get("S3Uri"),
        )

    async def health_check(self) -> bool:
        """
        Check if the translation service is reachable.

        Returns:
            True if the service answered, False otherwise
        """
        try:
            await run_blocking(
                self.translate_client.list_text_translation_jobs,
                timeout=self.timeout,
                MaxResults=1,
            )
            return True
        except (asyncio.TimeoutError, ClientError, BotoCoreError) as e:
            logger.warning(f"Translation service health check failed: {str(e)}")
            return False
