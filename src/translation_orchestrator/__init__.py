"""
Translation Orchestrator - submit, track and locate asynchronous document
translation jobs.
"""

__version__ = "1.0.0"
