from contextlib import contextmanager

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import scheduler
from database import Base
from models import JobStatus
from services import JobExecutionService


def make_session_scope():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    @contextmanager
    def session_scope():
        session = SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return session_scope


def test_unknown_job_is_rejected() -> None:
    with pytest.raises(ValueError):
        scheduler.run_job("nope")


def test_run_job_records_execution(monkeypatch) -> None:
    session_scope = make_session_scope()
    monkeypatch.setattr(scheduler, "session_scope", session_scope)

    result = scheduler.run_job("notification_cleanup")

    assert result == {"deactivated": 0}
    with session_scope() as session:
        execution = JobExecutionService(session).list_all()[0]
        assert execution.job_name == "notification_cleanup"
        assert execution.status == JobStatus.success
        assert execution.source == "manual"


def test_failed_job_is_recorded_and_only_raised_when_manual(monkeypatch) -> None:
    session_scope = make_session_scope()
    monkeypatch.setattr(scheduler, "session_scope", session_scope)

    def explode(session):
        raise RuntimeError("boom")

    monkeypatch.setitem(scheduler.JOBS, "due_notifications", explode)
    manager = scheduler.SchedulerManager()

    assert manager._run_job("due_notifications", "every_6h") is None
    with pytest.raises(RuntimeError):
        manager._run_job("due_notifications", "manual")

    with session_scope() as session:
        executions = JobExecutionService(session).list_all(job_name="due_notifications")
        assert [e.status for e in executions] == [JobStatus.failed, JobStatus.failed]
        assert executions[0].error_message == "boom"


def test_disabled_scheduler_does_not_start() -> None:
    manager = scheduler.SchedulerManager()
    manager.enabled = False

    manager.start()

    assert manager.scheduler.running is False
    manager.stop()
