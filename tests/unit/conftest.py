from __future__ import annotations

import pytest

from judgeloop.engine.orchestrator import SubmissionOrchestrator
from judgeloop.engine.storage import DuckDBStorage
from judgeloop.models.models import Problem

from fakes import FakeExecutionClient, points_from_output


@pytest.fixture
def storage():
    store = DuckDBStorage(":memory:")
    yield store
    store.close()


@pytest.fixture
def problem(storage: DuckDBStorage) -> Problem:
    return storage.create_problem(Problem(
        id="sum-of-two",
        name="Sum of Two",
        max_points=100,
        input_text="2 3\n10 20\n",
        output_text="5\n30\n",
    ))


@pytest.fixture
def other_problem(storage: DuckDBStorage) -> Problem:
    return storage.create_problem(Problem(
        id="reverse",
        name="Reverse",
        max_points=100,
        input_text="abc\n",
        output_text="cba\n",
    ))


@pytest.fixture
def team(storage: DuckDBStorage):
    return storage.create_team("Alpha", team_id="team-alpha")


@pytest.fixture
def execution_client() -> FakeExecutionClient:
    return FakeExecutionClient()


@pytest.fixture
def orchestrator(storage: DuckDBStorage, execution_client: FakeExecutionClient) -> SubmissionOrchestrator:
    return SubmissionOrchestrator(storage, execution_client, referee=points_from_output)
