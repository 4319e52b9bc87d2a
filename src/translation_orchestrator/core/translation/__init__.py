"""
Translation service access.
"""

from .job_service import JobService, AmazonTranslateJobService

__all__ = [
    'JobService',
    'AmazonTranslateJobService'
]
