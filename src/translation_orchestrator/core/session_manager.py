"""
Session Manager - Registry of orchestration sessions for a multi-client
process. Owns the shared, stateless collaborators and hands them to every
session it creates; sessions share no job state.
"""

import asyncio
import logging
import posixpath
import time
from typing import Dict, List, Optional
from urllib.parse import urlencode
import uuid

from .config import Settings
from .preflight import AvailabilityProber
from .polling import StatusPoller
from .resolution import ResultLocator
from .schemas.job import SessionPhase, SessionSnapshot
from .session import OrchestrationSession
from .storage import BlobStore, S3BlobStore, build_upload_key
from .storage.keys import basename
from .submission import JobSubmitter, content_type_hint, infer_content_kind
from .translation import AmazonTranslateJobService, JobService

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """No session is registered under the given id."""


class ResultNotReadyError(Exception):
    """The session has no located result to hand out."""


class SharedFileNotFoundError(Exception):
    """A shared link names no translated document."""


class SessionManager:
    """
    Creates, looks up and tears down orchestration sessions.
    """

    def __init__(self, settings: Settings, blob_store: BlobStore, job_service: JobService,
                 sleep=asyncio.sleep, clock=time.monotonic):
        self.settings = settings
        self.blob_store = blob_store
        self.job_service = job_service
        self.sessions: Dict[str, OrchestrationSession] = {}
        self._sleep = sleep
        self._clock = clock

        # Initialize orchestration components shared by every session
        self.submitter = JobSubmitter(
            job_service,
            bucket_name=settings.bucket_name,
            output_prefix=settings.output_prefix,
            access_role_ref=settings.access_role_arn,
        )
        self.poller = StatusPoller(
            job_service,
            interval=settings.poll_interval,
            budget=settings.poll_budget,
            sleep=sleep,
            clock=clock,
        )
        self.locator = ResultLocator(
            blob_store,
            output_prefix=settings.output_prefix,
            account_id=settings.account_id,
            conventions=settings.naming_conventions,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionManager":
        """Build a manager backed by S3 and Amazon Translate."""
        blob_store = S3BlobStore(
            settings.bucket_name,
            region_name=settings.aws_region,
            timeout=settings.request_timeout,
        )
        job_service = AmazonTranslateJobService(
            source_language=settings.source_language,
            region_name=settings.aws_region,
            timeout=settings.request_timeout,
        )
        return cls(settings, blob_store, job_service)

    def create_session(self, session_id: Optional[str] = None) -> OrchestrationSession:
        """
        Register a new idle session.

        Args:
            session_id: Identifier to use; generated if omitted

        Returns:
            The new session
        """
        session_id = session_id or str(uuid.uuid4())
        if session_id in self.sessions:
            raise ValueError(f"Session {session_id} already exists")

        session = OrchestrationSession(
            session_id,
            self.settings,
            prober=AvailabilityProber(self.blob_store, sleep=self._sleep),
            submitter=self.submitter,
            poller=self.poller,
            locator=self.locator,
            sleep=self._sleep,
            clock=self._clock,
        )
        self.sessions[session_id] = session
        logger.info(f"Created session {session_id}")
        return session

    def get_session(self, session_id: str) -> OrchestrationSession:
        try:
            return self.sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def list_sessions(self) -> List[SessionSnapshot]:
        return [session.snapshot() for session in self.sessions.values()]

    async def start(self, session_id: str, input_key: str,
                    target_language: str) -> SessionSnapshot:
        return await self.get_session(session_id).start(input_key, target_language)

    async def cancel(self, session_id: str) -> SessionSnapshot:
        return await self.get_session(session_id).cancel()

    async def remove_session(self, session_id: str) -> bool:
        """
        Cancel and forget a session.

        Returns:
            True if a session was removed
        """
        session = self.sessions.pop(session_id, None)
        if not session:
            return False
        await session.cancel()
        logger.info(f"Removed session {session_id}")
        return True

    async def download_url(self, session_id: str) -> Dict[str, object]:
        """
        Presigned download link for a finished session's result.

        Raises:
            ResultNotReadyError: if the session is not Done
        """
        session = self.get_session(session_id)
        if session.phase != SessionPhase.DONE or not session.result:
            raise ResultNotReadyError(f"Session {session_id} has no translated document yet")

        expires_in = self.settings.presigned_url_expiry
        url = await self.blob_store.presigned_url(session.result.output_key, expires_in)
        return {
            "url": url,
            "output_key": session.result.output_key,
            "display_name": session.result.display_name,
            "expires_in": expires_in,
            "share_link": self.share_link(session.result.output_key),
        }

    def share_link(self, output_key: str) -> str:
        """Session-independent link path for a translated document."""
        name = output_key[len(self.settings.output_prefix):]
        return f"/downloads?{urlencode({'file': name})}"

    def shared_key(self, file_name: str) -> str:
        """
        Map a shared file name onto its key under the output prefix.

        Raises:
            ValueError: if the name would leave the output prefix
        """
        prefix = self.settings.output_prefix
        name = (file_name or "").strip()
        if name.startswith(prefix):
            name = name[len(prefix):]
        key = posixpath.normpath(posixpath.join(prefix, name))
        if (not name or name.startswith("/") or key.startswith("..")
                or not key.startswith(prefix)):
            raise ValueError(f"Shared file must name a document under {prefix}")
        return key

    async def share_url(self, file_name: str) -> Dict[str, object]:
        """
        Presigned download link for a translated document, without a session.

        Raises:
            ValueError: if the name would leave the output prefix
            SharedFileNotFoundError: if no such document exists
        """
        key = self.shared_key(file_name)
        if not await self.blob_store.head(key):
            raise SharedFileNotFoundError(f"No translated document named {file_name}")

        expires_in = self.settings.presigned_url_expiry
        url = await self.blob_store.presigned_url(key, expires_in)
        logger.info(f"Issued shared link for {key}")
        return {
            "url": url,
            "output_key": key,
            "display_name": basename(key),
            "expires_in": expires_in,
            "share_link": self.share_link(key),
        }

    async def upload_slot(self, filename: str) -> Dict[str, object]:
        """
        Reserve an input key and a presigned PUT URL for the upload transport.
        """
        key = build_upload_key(filename, prefix=self.settings.input_prefix)
        content_type = content_type_hint(infer_content_kind(key))
        expires_in = self.settings.presigned_url_expiry
        url = await self.blob_store.presigned_upload_url(key, content_type, expires_in)
        logger.info(f"Reserved upload key {key}")
        return {
            "key": key,
            "upload_url": url,
            "content_type": content_type,
            "expires_in": expires_in,
        }

    async def shutdown(self):
        """Cancel every running workflow."""
        for session in list(self.sessions.values()):
            await session.cancel()
        logger.info(f"Session manager stopped ({len(self.sessions)} session(s))")
