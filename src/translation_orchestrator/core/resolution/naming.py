"""
Output naming conventions observed for the translation service.

Each convention builds a candidate output key for a job and names the
suffix an output written under that convention ends with. The layout has
changed across service versions, so candidates are hints that must be
confirmed against the object store before use.
"""

from typing import Callable, Dict, List, NamedTuple, Optional
from urllib.parse import urlsplit

from ..schemas.job import TranslationJob
from ..storage.keys import basename


class NamingContext(NamedTuple):
    output_prefix: str
    account_id: Optional[str] = None


class NamingConvention(NamedTuple):
    name: str
    candidate: Callable[[TranslationJob, NamingContext], Optional[str]]
    suffix: Callable[[TranslationJob], str]


def account_job_language_key(job: TranslationJob, context: NamingContext) -> Optional[str]:
    """`<prefix><account>-<job>-<lang>/<source key>`"""
    if not context.account_id:
        return None
    return (
        f"{context.output_prefix}{context.account_id}-{job.job_id}-"
        f"{job.target_language}/{job.source_key}"
    )


def account_job_language_suffix(job: TranslationJob) -> str:
    return f"-{job.target_language}/{job.source_key}"


def language_prefixed_key(job: TranslationJob, context: NamingContext) -> Optional[str]:
    """`<prefix><account>-TranslateText-<job>/<lang>.<filename>`"""
    if not context.account_id:
        return None
    return (
        f"{context.output_prefix}{context.account_id}-TranslateText-{job.job_id}/"
        f"{language_prefixed_suffix(job)}"
    )


def language_prefixed_suffix(job: TranslationJob) -> str:
    return f"{job.target_language}.{basename(job.source_key)}"


def reported_location_key(job: TranslationJob, context: NamingContext) -> Optional[str]:
    """`<folder reported by the service>/<lang>.<filename>`"""
    if not job.reported_output_location:
        return None
    folder = urlsplit(job.reported_output_location).path.lstrip("/")
    if folder and not folder.endswith("/"):
        folder += "/"
    return f"{folder}{language_prefixed_suffix(job)}"


CONVENTIONS: Dict[str, NamingConvention] = {
    "account_job_language": NamingConvention(
        "account_job_language", account_job_language_key, account_job_language_suffix
    ),
    "language_prefixed": NamingConvention(
        "language_prefixed", language_prefixed_key, language_prefixed_suffix
    ),
    "reported_location": NamingConvention(
        "reported_location", reported_location_key, language_prefixed_suffix
    ),
}


def get_conventions(names: List[str]) -> List[NamingConvention]:
    """
    Look up conventions by name, keeping the given order.

    Raises:
        KeyError: if a name is unknown
    """
    return [CONVENTIONS[name] for name in names]
