from enum import Enum
from typing import List, Optional

from ..models.models import Submission
from .errors import DispatchFailed, InvalidLanguage, ProblemNotFound, SubmissionNotFound, TeamNotFound, UnknownToken
from .execution import ExecutionClient, decode_base64
from .language import UNSUPPORTED_LANGUAGE_ID, map_language
from .locks import KeyedLock
from .referee import Referee, referee as default_referee
from .states import can_transition, is_scoring, is_terminal, map_status
from .storage import DuckDBStorage
from ..utils.logger_config import get_logger

logger = get_logger("orchestrator")


class CallbackOutcome(str, Enum):
    DUPLICATE = "DUPLICATE"    # Submission already terminal, nothing changed
    PROGRESS = "PROGRESS"      # Non-terminal status, e.g. IN_QUEUE -> PROCESSING
    RECORDED = "RECORDED"      # Non-scoring terminal state stored
    SCORED = "SCORED"          # Points awarded and folded into the team score


class SubmissionOrchestrator:
    """
    Drives a submission from creation to its terminal state.

    **Flow**
    - create(): resolve language, load problem and team, dispatch to the
      execution service, persist the IN_QUEUE submission with its token
    - handle_callback(): map the reported status, grade ACCEPTED/WRONG
      output with the referee and credit the team with the improvement
      over its previous best submission for the problem

    Callback handling for one (team, problem) pair is serialized with a
    per-key lock; different pairs proceed in parallel.
    """
    def __init__(
        self,
        storage: DuckDBStorage,
        execution_client: ExecutionClient,
        referee: Referee = default_referee,
        locks: Optional[KeyedLock] = None,
    ):
        self.storage = storage
        self.execution_client = execution_client
        self.referee = referee
        self.locks = locks or KeyedLock()

    def create(self, code: str, language: str, problem_id: str, team_id: str) -> Submission:
        """
        Create a submission and dispatch it for execution.

        Nothing is persisted unless the execution service accepted the code
        and returned a token.

        Raises:
            InvalidLanguage, ProblemNotFound, TeamNotFound: Invalid input
            DispatchFailed: The execution service call failed
        """
        code_language = map_language(language)
        if code_language.id == UNSUPPORTED_LANGUAGE_ID:
            raise InvalidLanguage(language)

        problem = self.storage.get_problem(problem_id)
        if problem is None:
            raise ProblemNotFound(problem_id)

        team = self.storage.get_team(team_id)
        if team is None:
            raise TeamNotFound(team_id)

        token = self.execution_client.submit(
            code=code,
            language_id=code_language.id,
            stdin=problem.input_text,
            expected_output=problem.output_text,
        )

        submission = self.storage.create_submission(
            token=token,
            team_id=team.id,
            problem_id=problem.id,
            language=code_language.id,
            code=code,
        )
        logger.info(f"Submission {submission.id} queued for team {team.id} on problem {problem.id}, token {token}")
        return submission

    def handle_callback(self, token: str, status_id: int, stdout: Optional[str] = None) -> CallbackOutcome:
        """
        Apply an execution result reported by the execution service.

        Safe to call repeatedly for the same token: once the submission is
        terminal, further deliveries change nothing.

        Raises:
            UnknownToken: No submission carries this token
        """
        submission = self.storage.fetch_by_token(token)
        if submission is None:
            logger.warning(f"Rejected callback for unknown token {token}")
            raise UnknownToken(token)

        state = map_status(status_id)

        with self.locks.hold((submission.team_id, submission.problem_id)):
            # Re-read under the lock, a concurrent delivery may have won
            submission = self.storage.fetch_by_token(token)
            if submission is None:
                raise UnknownToken(token)

            if not can_transition(submission.state, state):
                logger.info(f"> {token} :: ignoring {state.value}, submission already {submission.state.value}")
                return CallbackOutcome.DUPLICATE

            points = 0
            if is_scoring(state):
                problem = self.storage.get_problem(submission.problem_id)
                if problem is None:
                    raise ProblemNotFound(submission.problem_id)
                points = self.referee(decode_base64(stdout), problem.output_text, problem.max_points)
                logger.debug(f"> {token} :: awarded {points} points")

            result = self.storage.record_result(token, state, points)

        if result is None:
            return CallbackOutcome.DUPLICATE

        if not is_terminal(state):
            logger.info(f"> {token} :: {state.value}")
            return CallbackOutcome.PROGRESS

        if not is_scoring(state):
            logger.info(f"> {token} :: finished as {state.value}, no points")
            return CallbackOutcome.RECORDED

        if result.became_best:
            logger.debug(f"New best for team {submission.team_id} on {submission.problem_id}, adding {result.delta}")
        logger.info(f"> {token} :: {state.value} with {points} points, team +{result.delta}")
        return CallbackOutcome.SCORED

    def refresh(self, token: str) -> CallbackOutcome:
        """
        Pull the result of a submission from the execution service and apply
        it as if it had been delivered by callback. Used to recover lost
        callbacks.
        """
        if self.storage.fetch_by_token(token) is None:
            raise SubmissionNotFound(token)

        data = self.execution_client.fetch(token)
        status = data.get("status") or {}
        try:
            status_id = int(status.get("id"))
        except (TypeError, ValueError) as e:
            raise DispatchFailed(f"Execution service returned no status for {token}") from e
        return self.handle_callback(token, status_id, data.get("stdout"))

    def find_by_token(self, token: str) -> Submission:
        submission = self.storage.fetch_by_token(token)
        if submission is None:
            raise SubmissionNotFound(token)
        return submission

    def list_submissions(self, team_id: Optional[str] = None, problem_id: Optional[str] = None) -> List[Submission]:
        return self.storage.list_submissions(team_id=team_id, problem_id=problem_id)
