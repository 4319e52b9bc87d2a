"""
Core Translation Job Orchestration Components.
"""

from .config import Settings, get_settings, load_settings
from .session import OrchestrationSession
from .session_manager import SessionManager
from .schemas.job import (
    TranslationJob, JobStatus, SessionPhase, SessionSnapshot, ResultDescriptor
)

__all__ = [
    'Settings',
    'get_settings',
    'load_settings',
    'OrchestrationSession',
    'SessionManager',
    'TranslationJob',
    'JobStatus',
    'SessionPhase',
    'SessionSnapshot',
    'ResultDescriptor'
]
