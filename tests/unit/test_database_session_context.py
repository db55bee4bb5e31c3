"""Unit tests for database session context finalization behavior."""

from __future__ import annotations

from typing import Any

import pytest

from keyword_intel.core.database import get_session_context
from keyword_intel.repositories.workflow_repository import WorkflowRepository


class _FakeSessionContextManager:
    def __init__(self, session: "_FakeSession") -> None:
        self._session = session

    async def __aenter__(self) -> "_FakeSession":
        return self._session

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        return None


class _FakeSessionMaker:
    def __init__(self, session: "_FakeSession") -> None:
        self._session = session
        self.opened = 0

    def __call__(self) -> _FakeSessionContextManager:
        self.opened += 1
        return _FakeSessionContextManager(self._session)


class _FakeSession:
    def __init__(self) -> None:
        self.new: set[object] = set()
        self.dirty: set[object] = set()
        self.deleted: set[object] = set()
        self._in_transaction = True
        self.commit_calls = 0
        self.rollback_calls = 0
        self.rollback_error: Exception | None = None

    def in_transaction(self) -> bool:
        return self._in_transaction

    async def commit(self) -> None:
        self.commit_calls += 1
        self._in_transaction = False

    async def rollback(self) -> None:
        self.rollback_calls += 1
        if self.rollback_error is not None:
            raise self.rollback_error
        self._in_transaction = False


@pytest.fixture
def session(monkeypatch: pytest.MonkeyPatch) -> _FakeSession:
    fake = _FakeSession()
    monkeypatch.setattr("keyword_intel.core.database.async_session_maker", _FakeSessionMaker(fake))
    return fake


@pytest.mark.asyncio
async def test_get_session_context_commits_on_exit(session: _FakeSession) -> None:
    async with get_session_context() as yielded:
        assert yielded is session

    assert session.commit_calls == 1
    assert session.rollback_calls == 0


@pytest.mark.asyncio
async def test_get_session_context_read_only_mode_does_not_commit(session: _FakeSession) -> None:
    async with get_session_context(commit_on_exit=False):
        pass

    assert session.commit_calls == 0
    assert session.rollback_calls == 0


@pytest.mark.asyncio
async def test_get_session_context_read_only_mode_rejects_pending_orm_state(session: _FakeSession) -> None:
    session.dirty.add(object())

    with pytest.raises(RuntimeError, match="pending ORM changes"):
        async with get_session_context(commit_on_exit=False):
            pass

    assert session.commit_calls == 0
    assert session.rollback_calls == 1


@pytest.mark.asyncio
async def test_get_session_context_rolls_back_and_reraises(session: _FakeSession) -> None:
    session.rollback_error = RuntimeError("connection is closed")

    with pytest.raises(ValueError, match="boom"):
        async with get_session_context():
            raise ValueError("boom")

    assert session.commit_calls == 0
    assert session.rollback_calls == 1


@pytest.mark.asyncio
async def test_workflow_update_rejects_unknown_fields_before_opening_a_session(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    maker = _FakeSessionMaker(_FakeSession())
    monkeypatch.setattr("keyword_intel.core.database.async_session_maker", maker)

    with pytest.raises(ValueError, match="organization_id"):
        await WorkflowRepository().update("wf-1", "org-1", {"status": "failed", "organization_id": "org-2"})

    assert maker.opened == 0
