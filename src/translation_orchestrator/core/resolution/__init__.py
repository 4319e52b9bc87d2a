"""
Output resolution for succeeded jobs.
"""

from .naming import (
    NamingContext, NamingConvention, CONVENTIONS,
    account_job_language_key, language_prefixed_key, reported_location_key
)
from .result_locator import ResultLocator, display_name

__all__ = [
    'NamingContext',
    'NamingConvention',
    'CONVENTIONS',
    'account_job_language_key',
    'language_prefixed_key',
    'reported_location_key',
    'ResultLocator',
    'display_name'
]
