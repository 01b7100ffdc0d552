"""
DuckDB-based storage for judgeloop.

Holds submissions, the problem catalog and the team ledger. Scoring a
submission and crediting its team happen in one transaction, see
record_result().
"""

import random
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

import duckdb

from ..models.models import CodeState, Problem, Submission, Team, generate_id
from .locks import KeyedLock
from .states import SCORING_STATES, can_transition, is_scoring
from ..utils.logger_config import get_logger

logger = get_logger("storage")

SUBMISSION_COLUMNS = "id, token, team_id, problem_id, language, code, state, points, best, created_at, updated_at"
PROBLEM_COLUMNS = (
    "id, name, max_points, input_text, output_text, instructions_text, input_file_url, "
    "output_file_url, instructions_file_url, windows_file_url, object_file_url"
)
_SCORING_VALUES = tuple(sorted(state.value for state in SCORING_STATES))


class AggregationResult(NamedTuple):
    submission: Submission
    delta: int
    became_best: bool


class DuckDBStorage:
    """
    Persistence store for submissions, problems and teams.

    One database connection is opened per storage; every thread works on
    its own cursor of it so transactions never interleave on a cursor.
    """

    def __init__(self, db_path: str = "data/judgeloop.duckdb", conflict_retries: int = 5):
        logger.info(f"Initializing DuckDB storage at {db_path}")
        self.db_path = db_path
        self.conflict_retries = max(1, conflict_retries)

        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = duckdb.connect(db_path)
        self._thread_local = threading.local()
        # Cursors by owning thread, pruned once the thread has exited
        self._cursors: Dict[threading.Thread, duckdb.DuckDBPyConnection] = {}
        self._cursors_lock = threading.Lock()
        self._team_locks = KeyedLock()
        self._create_schema()

    def _get_conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create the cursor of the current thread"""
        if not hasattr(self._thread_local, 'conn'):
            cursor = self._conn.cursor()
            with self._cursors_lock:
                self._prune_cursors()
                self._cursors[threading.current_thread()] = cursor
            self._thread_local.conn = cursor
        return self._thread_local.conn

    def _prune_cursors(self) -> None:
        """Close cursors of finished threads. Caller holds _cursors_lock."""
        for thread in [thread for thread in self._cursors if not thread.is_alive()]:
            cursor = self._cursors.pop(thread)
            try:
                cursor.close()
            except duckdb.Error as e:
                logger.debug(f"Error closing cursor of finished thread {thread.name}: {e}")

    def _create_schema(self) -> None:
        conn = self._get_conn()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS problems (
                id VARCHAR PRIMARY KEY,
                name VARCHAR NOT NULL,
                max_points INTEGER NOT NULL CHECK (max_points > 0),
                input_text TEXT,
                output_text TEXT,
                instructions_text TEXT,
                input_file_url VARCHAR,
                output_file_url VARCHAR,
                instructions_file_url VARCHAR,
                windows_file_url VARCHAR,
                object_file_url VARCHAR
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS teams (
                id VARCHAR PRIMARY KEY,
                name VARCHAR NOT NULL,
                points INTEGER DEFAULT 0           -- Sum of best submission points per problem
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS submissions (
                id VARCHAR PRIMARY KEY,
                token VARCHAR NOT NULL UNIQUE,     -- Execution service token, callback key
                team_id VARCHAR NOT NULL,
                problem_id VARCHAR NOT NULL,
                language INTEGER NOT NULL,
                code TEXT,
                state VARCHAR NOT NULL,
                points INTEGER DEFAULT 0,
                best BOOLEAN DEFAULT FALSE,        -- Team's best submission for this problem
                created_at TIMESTAMP,
                updated_at TIMESTAMP
            )
        """)

        conn.execute("CREATE INDEX IF NOT EXISTS idx_submissions_team_problem ON submissions(team_id, problem_id)")

    @staticmethod
    def _row_to_submission(row: Tuple) -> Submission:
        return Submission(
            id=row[0],
            token=row[1],
            team_id=row[2],
            problem_id=row[3],
            language=row[4],
            code=row[5] or "",
            state=CodeState(row[6]),
            points=row[7] or 0,
            best=bool(row[8]),
            created_at=row[9],
            updated_at=row[10],
        )

    # Problem catalog
    def create_problem(self, problem: Problem) -> Problem:
        conn = self._get_conn()
        conn.execute(f"""
            INSERT INTO problems ({PROBLEM_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            problem.id, problem.name, problem.max_points, problem.input_text,
            problem.output_text, problem.instructions_text, problem.input_file_url,
            problem.output_file_url, problem.instructions_file_url,
            problem.windows_file_url, problem.object_file_url
        ])
        logger.debug(f"Created problem {problem.id} ({problem.name})")
        return problem

    def get_problem(self, problem_id: str) -> Optional[Problem]:
        """Fetch a problem with the texts the judge needs"""
        conn = self._get_conn()
        row = conn.execute(f"""
            SELECT {PROBLEM_COLUMNS} FROM problems WHERE id = ?
        """, [problem_id]).fetchone()
        if not row:
            return None

        return Problem(
            id=row[0],
            name=row[1],
            max_points=row[2],
            input_text=row[3] or "",
            output_text=row[4] or "",
            instructions_text=row[5] or "",
            input_file_url=row[6] or "",
            output_file_url=row[7] or "",
            instructions_file_url=row[8] or "",
            windows_file_url=row[9] or "",
            object_file_url=row[10] or "",
        )

    # Team ledger
    def create_team(self, name: str, team_id: Optional[str] = None) -> Team:
        team = Team(id=team_id or generate_id(), name=name)
        conn = self._get_conn()
        conn.execute("""
            INSERT INTO teams (id, name, points) VALUES (?, ?, 0)
        """, [team.id, team.name])
        logger.debug(f"Created team {team.id} ({team.name})")
        return team

    def get_team(self, team_id: str) -> Optional[Team]:
        conn = self._get_conn()
        row = conn.execute("""
            SELECT id, name, points FROM teams WHERE id = ?
        """, [team_id]).fetchone()
        if not row:
            return None
        return Team(id=row[0], name=row[1], points=row[2] or 0)

    def list_teams(self) -> List[Team]:
        """All teams, highest score first"""
        conn = self._get_conn()
        rows = conn.execute("""
            SELECT id, name, points FROM teams ORDER BY points DESC, name ASC
        """).fetchall()
        return [Team(id=row[0], name=row[1], points=row[2] or 0) for row in rows]

    # Submissions
    def create_submission(self, token: str, team_id: str, problem_id: str,
                          language: int, code: str) -> Submission:
        """Persist a freshly dispatched submission in IN_QUEUE state"""
        submission = Submission(
            id=generate_id(),
            token=token,
            team_id=team_id,
            problem_id=problem_id,
            language=language,
            code=code,
            state=CodeState.IN_QUEUE,
        )

        conn = self._get_conn()
        conn.execute(f"""
            INSERT INTO submissions ({SUBMISSION_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            submission.id, submission.token, submission.team_id, submission.problem_id,
            submission.language, submission.code, submission.state.value,
            submission.points, submission.best, submission.created_at, submission.updated_at
        ])
        return submission

    def fetch_by_token(self, token: str) -> Optional[Submission]:
        conn = self._get_conn()
        row = conn.execute(f"""
            SELECT {SUBMISSION_COLUMNS} FROM submissions WHERE token = ?
        """, [token]).fetchone()
        return self._row_to_submission(row) if row else None

    def get_submission(self, submission_id: str) -> Optional[Submission]:
        conn = self._get_conn()
        row = conn.execute(f"""
            SELECT {SUBMISSION_COLUMNS} FROM submissions WHERE id = ?
        """, [submission_id]).fetchone()
        return self._row_to_submission(row) if row else None

    def list_submissions(self, team_id: Optional[str] = None,
                         problem_id: Optional[str] = None) -> List[Submission]:
        """List submissions with optional filters, oldest first"""
        where_conditions = []
        params: List[Any] = []

        if team_id:
            where_conditions.append("team_id = ?")
            params.append(team_id)

        if problem_id:
            where_conditions.append("problem_id = ?")
            params.append(problem_id)

        query = f"SELECT {SUBMISSION_COLUMNS} FROM submissions"
        if where_conditions:
            query += " WHERE " + " AND ".join(where_conditions)
        query += " ORDER BY created_at ASC, id ASC"

        conn = self._get_conn()
        return [self._row_to_submission(row) for row in conn.execute(query, params).fetchall()]

    def _highest_scored(self, conn: duckdb.DuckDBPyConnection, problem_id: str, team_id: str,
                        exclude_id: Optional[str] = None) -> Optional[Tuple]:
        query = f"""
            SELECT {SUBMISSION_COLUMNS} FROM submissions
            WHERE problem_id = ? AND team_id = ? AND state IN (?, ?)
        """
        params: List[Any] = [problem_id, team_id, *_SCORING_VALUES]
        if exclude_id:
            query += " AND id <> ?"
            params.append(exclude_id)
        query += " ORDER BY points DESC, best DESC, created_at ASC LIMIT 1"
        return conn.execute(query, params).fetchone()

    def get_highest_points_for(self, problem_id: str, team_id: str) -> Optional[Submission]:
        """The team's highest scored submission for a problem, if any"""
        row = self._highest_scored(self._get_conn(), problem_id, team_id)
        return self._row_to_submission(row) if row else None

    def record_result(self, token: str, state: CodeState, points: int = 0) -> Optional[AggregationResult]:
        """
        Move a submission to `state` and, for ACCEPTED/WRONG, fold its points
        into the team score.

        The team is credited only by the improvement over its previous best
        submission for the same problem, so the team score stays the sum of
        best submissions. Returns None when the submission is missing or
        the transition is not allowed (duplicate delivery).

        Callers must serialize calls for the same (team, problem) pair.
        Transactions of one team are serialized here since they all update
        the same team row; write conflicts with other processes are retried
        with jittered backoff.
        """
        row = self._get_conn().execute("SELECT team_id FROM submissions WHERE token = ?", [token]).fetchone()
        if row is None:
            return None

        with self._team_locks.hold(row[0]):
            for attempt in range(1, self.conflict_retries + 1):
                try:
                    return self._record_result_once(token, state, points)
                except duckdb.TransactionException as e:
                    if attempt == self.conflict_retries:
                        raise
                    logger.warning(f"Write conflict recording {token} (attempt {attempt}): {e}")
                    time.sleep(random.uniform(0, 0.01 * 2 ** attempt))
        return None

    def _record_result_once(self, token: str, state: CodeState, points: int) -> Optional[AggregationResult]:
        conn = self._get_conn()
        conn.execute("BEGIN TRANSACTION")
        try:
            row = conn.execute(f"""
                SELECT {SUBMISSION_COLUMNS} FROM submissions WHERE token = ?
            """, [token]).fetchone()
            if row is None:
                conn.execute("ROLLBACK")
                return None

            submission = self._row_to_submission(row)
            if not can_transition(submission.state, state):
                conn.execute("ROLLBACK")
                return None

            now = datetime.now()
            submission.state = state
            submission.updated_at = now
            delta = 0
            became_best = False

            if is_scoring(state):
                submission.points = points
                previous = self._highest_scored(conn, submission.problem_id, submission.team_id,
                                                exclude_id=submission.id)
                if previous is None:
                    delta = points
                    became_best = True
                elif points > (previous[7] or 0):
                    delta = points - (previous[7] or 0)
                    became_best = True

                if became_best:
                    conn.execute("""
                        UPDATE submissions SET best = FALSE
                        WHERE team_id = ? AND problem_id = ? AND best = TRUE
                    """, [submission.team_id, submission.problem_id])
                    submission.best = True

            conn.execute("""
                UPDATE submissions SET state = ?, points = ?, best = ?, updated_at = ?
                WHERE id = ?
            """, [submission.state.value, submission.points, submission.best, now, submission.id])

            if delta > 0:
                conn.execute("""
                    UPDATE teams SET points = points + ? WHERE id = ?
                """, [delta, submission.team_id])

            conn.execute("COMMIT")
        except Exception:
            self._rollback(conn)
            raise

        return AggregationResult(submission, delta, became_best)

    @staticmethod
    def _rollback(conn: duckdb.DuckDBPyConnection) -> None:
        try:
            conn.execute("ROLLBACK")
        except duckdb.TransactionException:
            # A failed COMMIT has already rolled the transaction back
            pass

    def get_storage_info(self) -> Dict[str, Any]:
        """Counters for the health endpoint"""
        conn = self._get_conn()
        states = conn.execute("""
            SELECT state, COUNT(*) FROM submissions GROUP BY state
        """).fetchall()
        problem_count = conn.execute("SELECT COUNT(*) FROM problems").fetchone()
        team_count = conn.execute("SELECT COUNT(*) FROM teams").fetchone()

        return {
            "storage_format": "duckdb",
            "database": self.db_path,
            "total_problems": problem_count[0] if problem_count else 0,
            "total_teams": team_count[0] if team_count else 0,
            "total_submissions": sum(count for _, count in states),
            "submissions_by_state": {state: count for state, count in states},
        }

    def close(self) -> None:
        """Close all cursors and the database connection"""
        with self._cursors_lock:
            for cursor in self._cursors.values():
                try:
                    cursor.close()
                except duckdb.Error as e:
                    logger.debug(f"Error closing cursor: {e}")
            self._cursors.clear()
        self._thread_local = threading.local()
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
