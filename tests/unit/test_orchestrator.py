from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List

import pytest

from judgeloop.engine.errors import (
    DispatchFailed, InvalidLanguage, ProblemNotFound, SubmissionNotFound, TeamNotFound, UnknownToken
)
from judgeloop.engine.orchestrator import CallbackOutcome, SubmissionOrchestrator
from judgeloop.engine.storage import DuckDBStorage
from judgeloop.models.models import CodeState, Problem

from fakes import FakeExecutionClient, b64

ACCEPTED = 3
WRONG = 4
PROCESSING = 2
COMPILE_ERROR = 6


def submit(orchestrator: SubmissionOrchestrator, problem: Problem, team) -> str:
    return orchestrator.create("print(input())", "python", problem.id, team.id).token


def team_points(storage: DuckDBStorage, team) -> int:
    return storage.get_team(team.id).points


class TestCreate:
    def test_create_dispatches_and_persists_queued_submission(
        self, orchestrator: SubmissionOrchestrator, execution_client: FakeExecutionClient,
        storage: DuckDBStorage, problem: Problem, team
    ) -> None:
        submission = orchestrator.create("int main(){}", "cpp", problem.id, team.id)

        assert submission.token == "token-1"
        assert submission.state == CodeState.IN_QUEUE
        assert submission.language == 54
        assert submission.points == 0
        assert submission.best is False

        call = execution_client.calls[0]
        assert call["language_id"] == 54
        assert call["stdin"] == problem.input_text
        assert call["expected_output"] == problem.output_text
        assert storage.fetch_by_token("token-1").id == submission.id

    def test_unresolvable_language_is_rejected_before_dispatch(
        self, orchestrator: SubmissionOrchestrator, execution_client: FakeExecutionClient,
        storage: DuckDBStorage, problem: Problem, team
    ) -> None:
        with pytest.raises(InvalidLanguage):
            orchestrator.create("+++", "brainfuck-v2", problem.id, team.id)

        assert execution_client.calls == []
        assert storage.list_submissions() == []

    def test_missing_problem_or_team(
        self, orchestrator: SubmissionOrchestrator, execution_client: FakeExecutionClient,
        problem: Problem, team
    ) -> None:
        with pytest.raises(ProblemNotFound):
            orchestrator.create("x", "cpp", "no-such-problem", team.id)
        with pytest.raises(TeamNotFound):
            orchestrator.create("x", "cpp", problem.id, "no-such-team")
        assert execution_client.calls == []

    def test_dispatch_failure_leaves_no_record(
        self, orchestrator: SubmissionOrchestrator, execution_client: FakeExecutionClient,
        storage: DuckDBStorage, problem: Problem, team
    ) -> None:
        execution_client.fail_with = DispatchFailed("timed out")

        with pytest.raises(DispatchFailed):
            orchestrator.create("x", "cpp", problem.id, team.id)

        assert storage.list_submissions() == []


class TestCallback:
    def test_accepted_callback_scores_and_credits_team(
        self, orchestrator: SubmissionOrchestrator, storage: DuckDBStorage, problem: Problem, team
    ) -> None:
        token = submit(orchestrator, problem, team)

        outcome = orchestrator.handle_callback(token, ACCEPTED, b64("100\n"))

        assert outcome == CallbackOutcome.SCORED
        submission = orchestrator.find_by_token(token)
        assert submission.state == CodeState.ACCEPTED
        assert submission.points == 100
        assert submission.best is True
        assert team_points(storage, team) == 100

    def test_duplicate_callback_is_a_no_op(
        self, orchestrator: SubmissionOrchestrator, storage: DuckDBStorage, problem: Problem, team
    ) -> None:
        token = submit(orchestrator, problem, team)

        first = orchestrator.handle_callback(token, WRONG, b64("40"))
        snapshot = orchestrator.find_by_token(token).to_dict()
        second = orchestrator.handle_callback(token, WRONG, b64("40"))

        assert (first, second) == (CallbackOutcome.SCORED, CallbackOutcome.DUPLICATE)
        assert orchestrator.find_by_token(token).to_dict() == snapshot
        assert team_points(storage, team) == 40

    def test_referee_called_once_per_terminal_callback(
        self, storage: DuckDBStorage, execution_client: FakeExecutionClient, problem: Problem, team
    ) -> None:
        calls: List[tuple] = []

        def counting_referee(actual: str, expected: str, max_points: int) -> int:
            calls.append((actual, expected, max_points))
            return 10

        orchestrator = SubmissionOrchestrator(storage, execution_client, referee=counting_referee)
        token = submit(orchestrator, problem, team)
        orchestrator.handle_callback(token, ACCEPTED, b64("5\n30\n"))
        orchestrator.handle_callback(token, ACCEPTED, b64("5\n30\n"))

        assert calls == [("5\n30\n", problem.output_text, problem.max_points)]

    @pytest.mark.parametrize("first, second, deltas", [
        (40, 70, [40, 30]),
        (70, 40, [70, 0]),
    ])
    def test_no_double_counting(
        self, orchestrator: SubmissionOrchestrator, storage: DuckDBStorage,
        problem: Problem, team, first: int, second: int, deltas: List[int]
    ) -> None:
        observed = []
        for points in (first, second):
            token = submit(orchestrator, problem, team)
            before = team_points(storage, team)
            orchestrator.handle_callback(token, WRONG, b64(str(points)))
            observed.append(team_points(storage, team) - before)

        assert observed == deltas
        assert team_points(storage, team) == 70
        best = [s.points for s in storage.list_submissions(team_id=team.id) if s.best]
        assert best == [70]

    def test_score_is_monotonic_and_tracks_best(
        self, orchestrator: SubmissionOrchestrator, storage: DuckDBStorage,
        problem: Problem, other_problem: Problem, team
    ) -> None:
        sequence = [(problem, 20), (problem, 10), (other_problem, 50), (problem, 60),
                    (other_problem, 50), (problem, 0), (other_problem, 90)]
        history = [team_points(storage, team)]
        for target, points in sequence:
            token = submit(orchestrator, target, team)
            orchestrator.handle_callback(token, WRONG, b64(str(points)))
            history.append(team_points(storage, team))

        assert history == sorted(history)
        assert team_points(storage, team) == 60 + 90

    def test_non_scoring_terminal_state_does_not_aggregate(
        self, orchestrator: SubmissionOrchestrator, storage: DuckDBStorage, problem: Problem, team
    ) -> None:
        scored = submit(orchestrator, problem, team)
        orchestrator.handle_callback(scored, WRONG, b64("30"))
        broken = submit(orchestrator, problem, team)

        outcome = orchestrator.handle_callback(broken, COMPILE_ERROR, None)

        assert outcome == CallbackOutcome.RECORDED
        submission = orchestrator.find_by_token(broken)
        assert submission.state == CodeState.COMPILE_ERROR
        assert submission.points == 0
        assert submission.best is False
        assert orchestrator.find_by_token(scored).best is True
        assert team_points(storage, team) == 30

    def test_processing_then_terminal(
        self, orchestrator: SubmissionOrchestrator, storage: DuckDBStorage, problem: Problem, team
    ) -> None:
        token = submit(orchestrator, problem, team)

        assert orchestrator.handle_callback(token, PROCESSING) == CallbackOutcome.PROGRESS
        assert orchestrator.find_by_token(token).state == CodeState.PROCESSING
        assert orchestrator.handle_callback(token, ACCEPTED, b64("100")) == CallbackOutcome.SCORED
        assert orchestrator.handle_callback(token, PROCESSING) == CallbackOutcome.DUPLICATE
        assert orchestrator.find_by_token(token).state == CodeState.ACCEPTED

    def test_unknown_token_changes_nothing(
        self, orchestrator: SubmissionOrchestrator, storage: DuckDBStorage, problem: Problem, team
    ) -> None:
        token = submit(orchestrator, problem, team)
        before = [s.to_dict() for s in storage.list_submissions()]

        with pytest.raises(UnknownToken):
            orchestrator.handle_callback("not-a-token", ACCEPTED, b64("100"))

        assert [s.to_dict() for s in storage.list_submissions()] == before
        assert orchestrator.find_by_token(token).state == CodeState.IN_QUEUE
        assert team_points(storage, team) == 0

    def test_unmapped_status_is_internal_error(
        self, orchestrator: SubmissionOrchestrator, storage: DuckDBStorage, problem: Problem, team
    ) -> None:
        token = submit(orchestrator, problem, team)
        assert orchestrator.handle_callback(token, 42, b64("100")) == CallbackOutcome.RECORDED
        assert orchestrator.find_by_token(token).state == CodeState.INTERNAL_ERROR
        assert team_points(storage, team) == 0

    def test_concurrent_callbacks_do_not_double_credit(
        self, orchestrator: SubmissionOrchestrator, storage: DuckDBStorage,
        problem: Problem, other_problem: Problem, team
    ) -> None:
        scores = {problem.id: [35, 80, 55, 80, 10, 65], other_problem.id: [20, 45, 45, 5]}
        jobs = []
        for problem_id, points_list in scores.items():
            target = storage.get_problem(problem_id)
            for points in points_list:
                jobs.append((submit(orchestrator, target, team), points))
        # Every callback is delivered twice
        deliveries = jobs + jobs
        barrier = threading.Barrier(len(deliveries))

        def deliver(job):
            token, points = job
            barrier.wait()
            return orchestrator.handle_callback(token, WRONG, b64(str(points)))

        with ThreadPoolExecutor(max_workers=len(deliveries)) as pool:
            outcomes = list(pool.map(deliver, deliveries))

        assert outcomes.count(CallbackOutcome.SCORED) == len(jobs)
        assert outcomes.count(CallbackOutcome.DUPLICATE) == len(jobs)
        assert team_points(storage, team) == 80 + 45
        for problem_id in scores:
            best = [s for s in storage.list_submissions(team_id=team.id, problem_id=problem_id) if s.best]
            assert len(best) == 1
            assert best[0].points == max(scores[problem_id])


class TestQueries:
    def test_find_by_token_unknown(self, orchestrator: SubmissionOrchestrator) -> None:
        with pytest.raises(SubmissionNotFound):
            orchestrator.find_by_token("nope")

    def test_list_submissions_filters(
        self, orchestrator: SubmissionOrchestrator, storage: DuckDBStorage,
        problem: Problem, other_problem: Problem, team
    ) -> None:
        other_team = storage.create_team("Beta")
        submit(orchestrator, problem, team)
        submit(orchestrator, other_problem, team)
        submit(orchestrator, problem, other_team)

        assert len(orchestrator.list_submissions()) == 3
        assert len(orchestrator.list_submissions(team_id=team.id)) == 2
        assert len(orchestrator.list_submissions(team_id=team.id, problem_id=problem.id)) == 1

    def test_refresh_applies_polled_result(
        self, orchestrator: SubmissionOrchestrator, execution_client: FakeExecutionClient,
        storage: DuckDBStorage, problem: Problem, team
    ) -> None:
        token = submit(orchestrator, problem, team)
        execution_client.results[token] = {
            "token": token,
            "status": {"id": ACCEPTED, "description": "Accepted"},
            "stdout": b64("100"),
        }

        assert orchestrator.refresh(token) == CallbackOutcome.SCORED
        assert team_points(storage, team) == 100

    def test_refresh_unknown_submission(self, orchestrator: SubmissionOrchestrator) -> None:
        with pytest.raises(SubmissionNotFound):
            orchestrator.refresh("nope")
