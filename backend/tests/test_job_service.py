from datetime import datetime, timezone

import pytest

from agentic_browser.models.job import Job, JobStatus
from agentic_browser.schemas.agent import Message, MessageRole, load_transcript
from agentic_browser.services.job_service import InvalidJobTransition, JobNotFound, JobService


def _messages(*contents):
    return [Message(role=MessageRole.USER, content=c) for c in contents]


async def test_create_job_starts_running(db_session):
    job = await JobService(db_session).create_job("Extract pricing", "https://example.com")
    assert job.id is not None
    assert job.status == JobStatus.RUNNING
    assert job.created_at is not None
    assert job.output is None


async def test_update_job_overwrites_checkpoint(db_session):
    svc = JobService(db_session)
    job = await svc.create_job("g", "https://example.com")
    first = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    await svc.update_job(job.id, _messages("one"), ["line 1"], updated_at=first)
    await svc.update_job(job.id, _messages("one", "two"), ["line 1", "line 2"])

    stored = await svc.get_job(job.id)
    assert [m.content for m in load_transcript(stored.messages)] == ["one", "two"]
    assert stored.log == "line 1\nline 2"
    assert stored.status == JobStatus.RUNNING
    assert stored.updated_at is not None


async def test_finalize_job(db_session):
    svc = JobService(db_session)
    job = await svc.create_job("g", "https://example.com")
    done = await svc.finalize_job(job.id, "Pricing: $10/mo", _messages("m"), ["ok"])

    assert done.status == JobStatus.SUCCESS
    assert done.output == "Pricing: $10/mo"
    assert done.completed_at is not None
    assert done.failed_at is None


async def test_fail_job_records_reason(db_session):
    svc = JobService(db_session)
    job = await svc.create_job("g", "https://example.com")
    failed = await svc.fail_job(job.id, "turn limit exceeded", [], ["[1ms]: Loading page"])

    assert failed.status == JobStatus.FAILED
    assert failed.failed_at is not None
    assert failed.log.endswith("Failed: turn limit exceeded")
    assert failed.output is None


async def test_status_never_moves_backwards(db_session):
    svc = JobService(db_session)
    job = await svc.create_job("g", "https://example.com")
    await svc.finalize_job(job.id, "done", [], [])

    with pytest.raises(InvalidJobTransition):
        await svc.fail_job(job.id, "late failure", [], [])
    with pytest.raises(InvalidJobTransition):
        await svc.finalize_job(job.id, "again", [], [])

    assert (await svc.get_job(job.id)).status == JobStatus.SUCCESS


async def test_failed_job_cannot_succeed(db_session):
    svc = JobService(db_session)
    job = await svc.create_job("g", "https://example.com")
    await svc.fail_job(job.id, "boom", [], [])
    with pytest.raises(InvalidJobTransition):
        await svc.finalize_job(job.id, "done", [], [])


async def test_missing_job(db_session):
    svc = JobService(db_session)
    assert await svc.get_job(404) is None
    with pytest.raises(JobNotFound):
        await svc.update_job(404, [], [])


async def test_list_jobs_filters_and_paginates(db_session):
    svc = JobService(db_session)
    ids = [(await svc.create_job(f"g{i}", "https://example.com")).id for i in range(3)]
    await svc.finalize_job(ids[0], "a", [], [])

    jobs, total = await svc.list_jobs()
    assert total == 3
    assert [j.id for j in jobs] == list(reversed(ids))

    running, running_total = await svc.list_jobs(status=JobStatus.RUNNING)
    assert running_total == 2
    assert all(j.status == JobStatus.RUNNING for j in running)

    page, _ = await svc.list_jobs(page=2, page_size=2)
    assert [j.id for j in page] == [ids[0]]

    assert isinstance(jobs[0], Job)


@pytest.mark.parametrize("finish", ["finalize", "fail"])
async def test_checkpoint_rejected_after_job_finished(db_session, finish):
    svc = JobService(db_session)
    job = await svc.create_job("g", "https://example.com")
    if finish == "finalize":
        await svc.finalize_job(job.id, "done", _messages("final"), ["ok"])
    else:
        await svc.fail_job(job.id, "boom", _messages("final"), ["ok"])

    with pytest.raises(InvalidJobTransition):
        await svc.update_job(job.id, _messages("late"), ["late"])

    stored = await svc.get_job(job.id)
    assert [m.content for m in load_transcript(stored.messages)] == ["final"]
    assert "late" not in stored.log
