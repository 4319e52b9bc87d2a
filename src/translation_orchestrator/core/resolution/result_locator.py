"""
Result Locator - Finds the output object of a succeeded translation job.
Tries naming-convention candidates first, then falls back to searching a
listing of the output prefix. Only keys confirmed by the object store are
ever returned.
"""

import logging
import re
from typing import List, Optional

from ..exceptions import ConfigurationError, ResultFinalizingError, StorageError
from ..schemas.job import JobStatus, ResultDescriptor, TranslationJob
from ..storage.blob_store import BlobStore
from ..storage.keys import original_filename
from .naming import CONVENTIONS, NamingContext, NamingConvention, get_conventions

logger = logging.getLogger(__name__)

DEFAULT_CONVENTIONS = ["account_job_language", "language_prefixed", "reported_location"]


def contains_job_id(key: str, job_id: str) -> bool:
    """True if `job_id` appears in `key` delimited by non-alphanumerics."""
    pattern = rf"(?<![0-9A-Za-z]){re.escape(job_id)}(?![0-9A-Za-z])"
    return re.search(pattern, key) is not None


def display_name(job: TranslationJob) -> str:
    return f"translated-{original_filename(job.source_key)}"


class ResultLocator:
    """
    Resolves output keys for succeeded jobs.
    """

    def __init__(self, blob_store: BlobStore, output_prefix: str,
                 account_id: Optional[str] = None,
                 conventions: Optional[List[str]] = None):
        names = conventions or DEFAULT_CONVENTIONS
        unknown = [name for name in names if name not in CONVENTIONS]
        if unknown:
            raise ConfigurationError(f"Unknown naming convention(s): {', '.join(unknown)}")

        self.blob_store = blob_store
        self.context = NamingContext(output_prefix=output_prefix, account_id=account_id)
        self.conventions: List[NamingConvention] = get_conventions(names)

    def candidates(self, job: TranslationJob) -> List[str]:
        """Candidate output keys in convention order, without duplicates."""
        keys = []
        for convention in self.conventions:
            key = convention.candidate(job, self.context)
            if key and key not in keys:
                keys.append(key)
        return keys

    def expected_suffixes(self, job: TranslationJob) -> List[str]:
        suffixes = []
        for convention in self.conventions:
            suffix = convention.suffix(job)
            if suffix not in suffixes:
                suffixes.append(suffix)
        return suffixes

    async def guess(self, job: TranslationJob) -> Optional[str]:
        """Return the first candidate key the object store confirms."""
        for key in self.candidates(job):
            try:
                if await self.blob_store.head(key):
                    logger.info(f"Output for job {job.job_id} found at naming candidate {key}")
                    return key
            except StorageError as e:
                logger.warning(f"Could not confirm candidate {key}: {e.message}")
            logger.debug(f"Naming candidate {key} not found")
        return None

    async def search(self, job: TranslationJob) -> Optional[str]:
        """Search a listing of the output prefix for the job's output."""
        keys = await self.blob_store.list(self.context.output_prefix)
        suffixes = self.expected_suffixes(job)

        matches = []
        for key in keys:
            if not contains_job_id(key, job.job_id):
                continue
            for rank, suffix in enumerate(suffixes):
                if key.endswith(suffix):
                    matches.append((rank, key))
                    break

        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(
                f"Listing matched {len(matches)} outputs for job {job.job_id}, "
                f"using the first by convention order"
            )
        matches.sort()
        key = matches[0][1]
        logger.info(f"Output for job {job.job_id} found by listing at {key}")
        return key

    async def locate(self, job: TranslationJob) -> Optional[str]:
        """
        Find a confirmed output key, or None if the output is not visible yet.
        """
        key = await self.guess(job)
        if key:
            return key
        try:
            return await self.search(job)
        except StorageError as e:
            logger.warning(f"Listing {self.context.output_prefix} failed: {e.message}")
            return None

    async def resolve(self, job: TranslationJob) -> ResultDescriptor:
        """
        Resolve and record the output of a succeeded job.

        Args:
            job: Job whose status is SUCCEEDED

        Returns:
            Descriptor of the confirmed output object

        Raises:
            ResultFinalizingError: if the output is not visible yet
        """
        if job.status != JobStatus.SUCCEEDED:
            raise ValueError(f"Job {job.job_id} has not succeeded")

        key = await self.locate(job)
        if not key:
            raise ResultFinalizingError(
                f"Output of job {job.job_id} is not visible under {self.context.output_prefix} yet"
            )

        job.mark_resolved(key)
        return ResultDescriptor(output_key=key, display_name=display_name(job))
