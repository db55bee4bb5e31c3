"""Shared fixtures for pipeline step tests."""

from __future__ import annotations

from typing import Any

import pytest

from keyword_intel.services.analytics import InMemoryEventPublisher
from keyword_intel.services.workflow_status import WorkflowStatusTracker
from tests.fakes import (
    TEST_RETRY_POLICY,
    FakeKeywordStore,
    FakeTopicClusterStore,
    FakeWorkflowStore,
    no_sleep,
)


@pytest.fixture
def keyword_store() -> FakeKeywordStore:
    return FakeKeywordStore()


@pytest.fixture
def cluster_store() -> FakeTopicClusterStore:
    return FakeTopicClusterStore()


@pytest.fixture
def workflow_store() -> FakeWorkflowStore:
    return FakeWorkflowStore()


@pytest.fixture
def tracker(workflow_store: FakeWorkflowStore) -> WorkflowStatusTracker:
    return WorkflowStatusTracker(workflow_store)


@pytest.fixture
def publisher() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


@pytest.fixture
def step_kwargs(tracker: WorkflowStatusTracker, publisher: InMemoryEventPublisher) -> dict[str, Any]:
    return {"tracker": tracker, "publisher": publisher, "retry_policy": TEST_RETRY_POLICY, "sleep": no_sleep}
