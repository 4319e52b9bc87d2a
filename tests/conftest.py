import os

import pytest

from translation_orchestrator.core.config import load_settings

from fakes import FakeBlobStore, FakeJobService


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep host TRANSLATOR_* variables out of the tests"""
    for name in list(os.environ):
        if name.startswith("TRANSLATOR_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings():
    return load_settings(
        bucket_name="docs-bucket",
        access_role_arn="arn:aws:iam::123456789012:role/translate-access",
        account_id="ACME",
        poll_interval=0,
        poll_budget=60,
        preflight_base_delay=0,
        max_finalizing_attempts=3,
        _env_file=None,
    )


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def job_service():
    return FakeJobService()
