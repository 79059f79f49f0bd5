# backend/tests/scheduler/test_scheduler_jobs.py
import pytest
from sqlalchemy import func, select

from openbudget.models import ApiSync
from openbudget.scheduler import jobs


def test_current_year_is_plausible():
    assert 2000 <= jobs._current_year() <= 2100


@pytest.mark.anyio
async def test_nightly_sync_without_budgets_is_skipped_quietly(db):
    # empty database: the run finds no candidates and must not raise
    await jobs.run_nightly_sync()
    assert db.execute(select(func.count()).select_from(ApiSync)).scalar_one() == 0


@pytest.mark.anyio
async def test_retry_job_with_nothing_failed(db):
    await jobs.retry_failed_job()
    assert db.execute(select(func.count()).select_from(ApiSync)).scalar_one() == 0
