import asyncio
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from coursegate.core.errors import ProgressError
from coursegate.models import LessonProgress
from coursegate.services.identity import Identity
from coursegate.services.progress import ProgressRecorder

U1 = Identity(id="U1", email="u1@example.com")


def test_mark_complete_twice_leaves_one_completed_row(open_store):
    async def scenario():
        async with open_store() as sessions:
            async with sessions() as db:
                first = await ProgressRecorder(db).mark_complete(
                    U1, "intro-01", course_slug="course-101", module_slug="module-1"
                )
            async with sessions() as db:
                second = await ProgressRecorder(db).mark_complete(U1, "intro-01")
            async with sessions() as db:
                count = (
                    await db.execute(
                        select(func.count())
                        .select_from(LessonProgress)
                        .where(LessonProgress.user_id == "U1", LessonProgress.lesson_slug == "intro-01")
                    )
                ).scalar_one()
            return first, second, count

    first, second, count = asyncio.run(scenario())
    assert count == 1
    assert first.completed is True
    assert second.completed is True
    assert second.id == first.id
    # Later calls without course context keep what the first call recorded.
    assert second.course_slug == "course-101"
    assert second.module_slug == "module-1"
    assert second.updated_at >= first.updated_at


def test_check_progress_is_scoped_to_caller(open_store):
    other = Identity(id="U9", email="u9@example.com")

    async def scenario():
        async with open_store() as sessions:
            async with sessions() as db:
                recorder = ProgressRecorder(db)
                before = await recorder.check_progress(U1, "intro-01")
                await recorder.mark_complete(U1, "intro-01", course_slug="course-101")
                after = await recorder.check_progress(U1, "intro-01")
                others = await recorder.check_progress(other, "intro-01")
            return before, after, others

    before, after, others = asyncio.run(scenario())
    assert before is False
    assert after is True
    assert others is False


class BrokenSession:
    bind = SimpleNamespace(dialect=SimpleNamespace(name="sqlite"))

    def __init__(self):
        self.rollbacks = 0

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    async def rollback(self):
        self.rollbacks += 1


def test_store_failure_surfaces_as_progress_error():
    with pytest.raises(ProgressError) as excinfo:
        asyncio.run(ProgressRecorder(BrokenSession()).check_progress(U1, "intro-01"))
    assert excinfo.value.user_message == "Could not save progress"


def test_failed_write_surfaces_as_progress_error():
    db = BrokenSession()
    with pytest.raises(ProgressError) as excinfo:
        asyncio.run(ProgressRecorder(db).mark_complete(U1, "intro-01", course_slug="course-101"))
    assert excinfo.value.code == "progress_failed"
    assert db.rollbacks == 1


def test_unsupported_dialect_is_a_progress_error():
    db = BrokenSession()
    db.bind = SimpleNamespace(dialect=SimpleNamespace(name="mysql"))
    with pytest.raises(ProgressError):
        asyncio.run(ProgressRecorder(db).mark_complete(U1, "intro-01"))
