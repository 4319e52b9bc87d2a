import asyncio

import pytest

from translation_orchestrator.core.exceptions import InvalidTransitionError, PollTransportError
from translation_orchestrator.core.schemas.job import JobStatus, SessionPhase, TranslationJob
from translation_orchestrator.core.session import StaleGenerationError
from translation_orchestrator.core.session_manager import SessionManager

from fakes import FakeBlobStore, FakeJobService, fast_sleep


def make_session(settings, blob_store, job_service):
    manager = SessionManager(settings, blob_store, job_service, sleep=fast_sleep)
    return manager.create_session("s-1")


async def collect(session):
    return [snapshot async for snapshot in session.observe()]


async def run_observed(session, input_key, target_language):
    observer = asyncio.create_task(collect(session))
    await asyncio.sleep(0)
    await session.start(input_key, target_language)
    snapshots = await asyncio.wait_for(observer, timeout=5)
    await session.wait()
    return snapshots


def phases(snapshots):
    ordered = []
    for snapshot in snapshots:
        if not ordered or ordered[-1] != snapshot.phase:
            ordered.append(snapshot.phase)
    return ordered


@pytest.mark.asyncio
async def test_naming_candidate_resolves_to_done(settings):
    input_key = "uploads/1700000000-report.pdf"
    output_key = "translated/ACME-J1-de/uploads/1700000000-report.pdf"
    blob_store = FakeBlobStore(objects=[input_key, output_key])
    job_service = FakeJobService(
        job_ids=["J1"],
        scripts={"J1": ["IN_PROGRESS", "IN_PROGRESS", "IN_PROGRESS", "COMPLETED"]},
    )
    session = make_session(settings, blob_store, job_service)

    snapshots = await run_observed(session, input_key, "de")

    assert phases(snapshots) == [
        SessionPhase.IDLE,
        SessionPhase.PREFLIGHTING,
        SessionPhase.SUBMITTING,
        SessionPhase.POLLING,
        SessionPhase.RESOLVING,
        SessionPhase.DONE,
    ]
    assert session.phase == SessionPhase.DONE
    assert session.result.output_key == output_key
    assert session.result.display_name == "translated-report.pdf"
    assert session.job.status == JobStatus.SUCCEEDED
    assert session.job.output_key == output_key
    assert session.last_error is None
    assert job_service.polls_for("J1") == 4

    await asyncio.sleep(0)
    assert job_service.polls_for("J1") == 4
    assert snapshots[-1].result.output_key == output_key
    assert snapshots[-1].progress_hint == 100


@pytest.mark.asyncio
async def test_listing_fallback_resolves_to_done(settings):
    input_key = "uploads/report.docx"
    output_key = "translated/999999999999-TranslateText-J2/de.report.docx"
    blob_store = FakeBlobStore(objects=[input_key, output_key])
    job_service = FakeJobService(job_ids=["J2"], scripts={"J2": ["COMPLETED"]})
    session = make_session(settings, blob_store, job_service)

    await session.start(input_key, "de")
    await session.wait()

    assert session.phase == SessionPhase.DONE
    assert session.result.output_key == output_key
    assert "translated/ACME-TranslateText-J2/de.report.docx" in blob_store.head_calls
    assert blob_store.list_calls == ["translated/"]


@pytest.mark.asyncio
async def test_remote_failure_surfaces_message(settings):
    input_key = "uploads/1700000000-report.pdf"
    blob_store = FakeBlobStore(objects=[input_key])
    job_service = FakeJobService(
        job_ids=["J3"],
        scripts={"J3": ["IN_PROGRESS", ("FAILED", "Unsupported document encoding")]},
    )
    session = make_session(settings, blob_store, job_service)

    snapshots = await run_observed(session, input_key, "de")

    assert session.phase == SessionPhase.FAILED
    assert session.last_error == "Unsupported document encoding"
    assert session.error_stage == "processing"
    assert session.job.status == JobStatus.FAILED
    assert snapshots[-1].error == "Unsupported document encoding"
    assert job_service.polls_for("J3") == 2

    await asyncio.sleep(0)
    assert job_service.polls_for("J3") == 2
    assert blob_store.list_calls == []


@pytest.mark.asyncio
async def test_preflight_exhaustion_skips_submission(settings):
    blob_store = FakeBlobStore()
    job_service = FakeJobService()
    session = make_session(settings, blob_store, job_service)

    await session.start("uploads/1700000000-never.pdf", "de")
    await session.wait()

    assert session.phase == SessionPhase.FAILED
    assert session.error_stage == "preflight"
    assert "did not become available" in session.last_error
    assert len(blob_store.head_calls) == 5
    assert job_service.start_calls == []


@pytest.mark.asyncio
async def test_submission_error_fails_session(settings):
    input_key = "uploads/1700000000-report.pdf"
    blob_store = FakeBlobStore(objects=[input_key])
    job_service = FakeJobService(reject="ValidationException: unsupported language pair")
    session = make_session(settings, blob_store, job_service)

    await session.start(input_key, "de")
    await session.wait()

    assert session.phase == SessionPhase.FAILED
    assert session.error_stage == "submission"
    assert session.last_error == "ValidationException: unsupported language pair"
    assert len(job_service.start_calls) == 1
    assert job_service.describe_calls == []


@pytest.mark.asyncio
async def test_poll_transport_errors_are_retried(settings):
    input_key = "uploads/1700000000-report.pdf"
    output_key = "translated/ACME-J1-de/uploads/1700000000-report.pdf"
    blob_store = FakeBlobStore(objects=[input_key, output_key])
    job_service = FakeJobService(scripts={"J1": [
        PollTransportError("throttled"),
        "IN_PROGRESS",
        PollTransportError("connection reset"),
        "COMPLETED",
    ]})
    session = make_session(settings, blob_store, job_service)

    await session.start(input_key, "de")
    await session.wait()

    assert session.phase == SessionPhase.DONE
    assert job_service.polls_for("J1") == 4


@pytest.mark.asyncio
async def test_poll_budget_exceeded_fails_session(settings):
    settings = settings.model_copy(update={"poll_budget": 0})
    input_key = "uploads/1700000000-report.pdf"
    blob_store = FakeBlobStore(objects=[input_key])
    job_service = FakeJobService(scripts={"J1": ["IN_PROGRESS"]})
    session = make_session(settings, blob_store, job_service)

    await session.start(input_key, "de")
    await session.wait()

    assert session.phase == SessionPhase.FAILED
    assert session.error_stage == "processing"
    assert "did not finish" in session.last_error


@pytest.mark.asyncio
async def test_finalizing_output_is_repolled(settings):
    input_key = "uploads/1700000000-report.pdf"
    output_key = "translated/555-TranslateText-J1/de.1700000000-report.pdf"
    blob_store = FakeBlobStore(objects=[input_key], pending={output_key: 1})
    job_service = FakeJobService(scripts={"J1": ["COMPLETED"]})
    session = make_session(settings, blob_store, job_service)

    snapshots = await run_observed(session, input_key, "de")

    assert phases(snapshots)[-4:] == [
        SessionPhase.RESOLVING,
        SessionPhase.POLLING,
        SessionPhase.RESOLVING,
        SessionPhase.DONE,
    ]
    assert session.result.output_key == output_key
    assert job_service.polls_for("J1") == 2


@pytest.mark.asyncio
async def test_unlocatable_output_fails_with_resolution_error(settings):
    input_key = "uploads/1700000000-report.pdf"
    blob_store = FakeBlobStore(objects=[input_key])
    job_service = FakeJobService(scripts={"J1": ["COMPLETED"]})
    session = make_session(settings, blob_store, job_service)

    await session.start(input_key, "de")
    await session.wait()

    assert session.phase == SessionPhase.FAILED
    assert session.error_stage == "resolution"
    assert session.last_error.startswith("Translation succeeded but")
    assert len(blob_store.list_calls) == settings.max_finalizing_attempts
    assert session.job.output_key is None
    assert session.result is None


@pytest.mark.asyncio
async def test_cancel_then_restart_discards_stale_results(settings):
    first_key = "uploads/1-first.pdf"
    second_key = "uploads/2-second.pdf"
    blob_store = FakeBlobStore(objects=[
        first_key,
        second_key,
        "translated/ACME-J1-de/uploads/1-first.pdf",
        "translated/ACME-J2-fr/uploads/2-second.pdf",
    ])
    job_service = FakeJobService(
        job_ids=["J1", "J2"],
        scripts={"J1": ["COMPLETED"], "J2": ["COMPLETED"]},
    )
    gate = asyncio.Event()
    job_service.gates["J1"] = gate
    session = make_session(settings, blob_store, job_service)

    await session.start(first_key, "de")
    for _ in range(20):
        if job_service.describe_calls:
            break
        await asyncio.sleep(0)
    assert job_service.describe_calls == ["J1"]
    first_generation = session.generation

    idle = await session.cancel()
    assert idle.phase == SessionPhase.IDLE
    assert session.job is None

    observer = asyncio.create_task(collect(session))
    await asyncio.sleep(0)
    await session.start(second_key, "fr")
    gate.set()
    snapshots = await asyncio.wait_for(observer, timeout=5)
    await session.wait()

    assert session.phase == SessionPhase.DONE
    assert session.result.output_key == "translated/ACME-J2-fr/uploads/2-second.pdf"
    assert all(s.generation > first_generation for s in snapshots)
    assert all(s.job_id in (None, "J2") for s in snapshots)
    assert job_service.polls_for("J1") == 1


@pytest.mark.asyncio
async def test_start_while_running_cancels_previous_job(settings):
    blob_store = FakeBlobStore(objects=["uploads/1-a.pdf", "uploads/2-b.pdf",
                                        "translated/ACME-J2-de/uploads/2-b.pdf"])
    job_service = FakeJobService(job_ids=["J1", "J2"],
                                 scripts={"J1": ["IN_PROGRESS"], "J2": ["COMPLETED"]})
    session = make_session(settings, blob_store, job_service)

    await session.start("uploads/1-a.pdf", "de")
    for _ in range(20):
        if job_service.describe_calls:
            break
        await asyncio.sleep(0)

    await session.start("uploads/2-b.pdf", "de")
    await session.wait()
    j1_polls = job_service.polls_for("J1")

    for _ in range(10):
        await asyncio.sleep(0)
    assert job_service.polls_for("J1") == j1_polls
    assert session.result.output_key == "translated/ACME-J2-de/uploads/2-b.pdf"
    assert len(job_service.start_calls) == 2


@pytest.mark.asyncio
async def test_cancel_is_idempotent(settings, blob_store, job_service):
    session = make_session(settings, blob_store, job_service)

    first = await session.cancel()
    second = await session.cancel()

    assert first.phase == SessionPhase.IDLE
    assert second.phase == SessionPhase.IDLE


@pytest.mark.asyncio
async def test_cancel_after_done_resets_to_idle(settings):
    input_key = "uploads/1700000000-report.pdf"
    blob_store = FakeBlobStore(objects=[input_key,
                                        "translated/ACME-J1-de/uploads/1700000000-report.pdf"])
    job_service = FakeJobService(scripts={"J1": ["COMPLETED"]})
    session = make_session(settings, blob_store, job_service)

    await session.start(input_key, "de")
    await session.wait()
    assert session.phase == SessionPhase.DONE

    snapshot = await session.cancel()

    assert snapshot.phase == SessionPhase.IDLE
    assert snapshot.result is None


@pytest.mark.asyncio
async def test_observe_ends_on_reset(settings):
    input_key = "uploads/1700000000-report.pdf"
    blob_store = FakeBlobStore(objects=[input_key])
    job_service = FakeJobService(scripts={"J1": ["IN_PROGRESS"]})
    session = make_session(settings, blob_store, job_service)
    await session.start(input_key, "de")

    observer = asyncio.create_task(collect(session))
    for _ in range(10):
        await asyncio.sleep(0)
    await session.cancel()
    snapshots = await asyncio.wait_for(observer, timeout=5)

    assert snapshots[0].phase != SessionPhase.IDLE
    assert snapshots[-1].phase == SessionPhase.IDLE


@pytest.mark.asyncio
async def test_observe_is_restartable_after_done(settings):
    input_key = "uploads/1700000000-report.pdf"
    blob_store = FakeBlobStore(objects=[input_key,
                                        "translated/ACME-J1-de/uploads/1700000000-report.pdf"])
    job_service = FakeJobService(scripts={"J1": ["COMPLETED"]})
    session = make_session(settings, blob_store, job_service)

    await session.start(input_key, "de")
    await session.wait()

    first = await collect(session)
    second = await collect(session)

    assert [s.phase for s in first] == [SessionPhase.DONE]
    assert [s.phase for s in second] == [SessionPhase.DONE]


@pytest.mark.asyncio
async def test_start_validates_input(settings, blob_store, job_service):
    session = make_session(settings, blob_store, job_service)

    with pytest.raises(ValueError):
        await session.start("", "de")
    with pytest.raises(ValueError):
        await session.start("uploads/a.pdf", "xx")
    with pytest.raises(ValueError):
        await session.start("translated/ACME-J1-de/uploads/a.pdf", "de")

    assert session.phase == SessionPhase.IDLE
    assert job_service.start_calls == []


@pytest.mark.asyncio
async def test_stale_generation_cannot_transition(settings, blob_store, job_service):
    session = make_session(settings, blob_store, job_service)
    session.generation = 3

    with pytest.raises(StaleGenerationError):
        session._transition(2, SessionPhase.PREFLIGHTING)
    assert session.phase == SessionPhase.IDLE


@pytest.mark.asyncio
async def test_phases_only_move_forward(settings, blob_store, job_service):
    session = make_session(settings, blob_store, job_service)

    with pytest.raises(InvalidTransitionError):
        session._transition(session.generation, SessionPhase.POLLING)


@pytest.mark.asyncio
async def test_sessions_are_isolated(settings):
    blob_store = FakeBlobStore(objects=[
        "uploads/1-a.pdf", "uploads/2-b.pdf",
        "translated/ACME-J1-de/uploads/1-a.pdf",
    ])
    job_service = FakeJobService(job_ids=["J1", "J2"],
                                 scripts={"J1": ["COMPLETED"], "J2": [("FAILED", "Bad input")]})
    manager = SessionManager(settings, blob_store, job_service, sleep=fast_sleep)
    first = manager.create_session("a")
    second = manager.create_session("b")

    await manager.start("a", "uploads/1-a.pdf", "de")
    await first.wait()
    await manager.start("b", "uploads/2-b.pdf", "de")
    await second.wait()

    assert first.phase == SessionPhase.DONE
    assert second.phase == SessionPhase.FAILED
    assert first.job.job_id == "J1"
    assert second.job.job_id == "J2"
    assert first.last_error is None


async def spin(ticks=20):
    for _ in range(ticks):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_overlapping_starts_leave_one_tracked_workflow(settings):
    keys = ["uploads/1-a.pdf", "uploads/2-b.pdf", "uploads/3-c.pdf"]
    blob_store = FakeBlobStore(objects=keys)
    job_service = FakeJobService(job_ids=["J1", "J2", "J3"])
    session = make_session(settings, blob_store, job_service)

    await session.start(keys[0], "de")
    await spin()
    assert job_service.polls_for("J1") > 0

    await asyncio.gather(session.start(keys[1], "de"), session.start(keys[2], "de"))
    await spin()

    assert session.job.job_id in ("J2", "J3")
    assert job_service.start_calls[-1]["input_location"].endswith(keys[2])
    active = session.job.job_id
    superseded = {job_id: job_service.polls_for(job_id)
                  for job_id in ("J1", "J2", "J3") if job_id != active}
    await spin()
    assert {job_id: job_service.polls_for(job_id) for job_id in superseded} == superseded
    assert job_service.polls_for(active) > 0

    await session.cancel()
    polls = len(job_service.describe_calls)
    await spin()

    assert len(job_service.describe_calls) == polls
    assert session.phase == SessionPhase.IDLE


@pytest.mark.asyncio
async def test_stale_status_update_stops_the_watch(settings, blob_store, job_service):
    session = make_session(settings, blob_store, job_service)
    job = TranslationJob(job_id="J1", source_key="uploads/a.pdf", target_language="de")
    session.generation = 2

    with pytest.raises(StaleGenerationError):
        session._on_status(1, job, JobStatus.PROCESSING, None)
    assert job.status == JobStatus.SUBMITTED


@pytest.mark.asyncio
async def test_sessions_do_not_share_upload_confirmations(settings):
    input_key = "uploads/1700000000-report.pdf"
    blob_store = FakeBlobStore(objects=[input_key,
                                        "translated/ACME-J1-de/uploads/1700000000-report.pdf"])
    job_service = FakeJobService(job_ids=["J1", "J2"], scripts={"J1": ["COMPLETED"]})
    manager = SessionManager(settings, blob_store, job_service, sleep=fast_sleep)
    first = manager.create_session("a")
    second = manager.create_session("b")
    assert first.prober is not second.prober

    await first.start(input_key, "de")
    await first.wait()
    assert first.phase == SessionPhase.DONE

    blob_store.objects.discard(input_key)
    await second.start(input_key, "de")
    await second.wait()

    assert second.phase == SessionPhase.FAILED
    assert second.error_stage == "preflight"
    assert len(job_service.start_calls) == 1


@pytest.mark.asyncio
async def test_poll_budget_covers_finalizing_repolls(settings):
    settings = settings.model_copy(update={"poll_budget": 10, "max_finalizing_attempts": 10})
    input_key = "uploads/1700000000-report.pdf"
    blob_store = FakeBlobStore(objects=[input_key])
    job_service = FakeJobService(scripts={"J1": ["COMPLETED"]})
    now = [0.0]
    describe = job_service.describe_job

    async def slow_describe(job_id):
        now[0] += 4
        return await describe(job_id)

    job_service.describe_job = slow_describe
    manager = SessionManager(settings, blob_store, job_service, sleep=fast_sleep,
                             clock=lambda: now[0])
    session = manager.create_session("s-1")

    await session.start(input_key, "de")
    await session.wait()

    assert session.phase == SessionPhase.FAILED
    assert session.error_stage == "processing"
    assert "did not finish within 10s" in session.last_error
    assert job_service.polls_for("J1") == 3
