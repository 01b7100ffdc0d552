from enum import Enum
from typing import Dict, NamedTuple, Optional
from datetime import datetime
import uuid

# Helper function to generate unique IDs
def generate_id() -> str:
    """Generate a unique ID for entities"""
    return str(uuid.uuid4())


class CodeState(str, Enum):
    IN_QUEUE = "IN_QUEUE"
    PROCESSING = "PROCESSING"
    ACCEPTED = "ACCEPTED"
    WRONG = "WRONG"
    TIME_LIMIT_EXCEEDED = "TIME_LIMIT_EXCEEDED"
    COMPILE_ERROR = "COMPILE_ERROR"
    RUNTIME_ERROR_SIGSEGV = "RUNTIME_ERROR_SIGSEGV"
    RUNTIME_ERROR_SIGXFSZ = "RUNTIME_ERROR_SIGXFSZ"
    RUNTIME_ERROR_SIGFPE = "RUNTIME_ERROR_SIGFPE"
    RUNTIME_ERROR_SIGABRT = "RUNTIME_ERROR_SIGABRT"
    RUNTIME_ERROR_NZEC = "RUNTIME_ERROR_NZEC"
    RUNTIME_ERROR_OTHER = "RUNTIME_ERROR_OTHER"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    EXEC_FORMAT_ERROR = "EXEC_FORMAT_ERROR"


class LanguageStruct(NamedTuple):
    """Execution engine language id paired with the label it was resolved from"""
    id: int
    label: str


class Problem:
    def __init__(
        self,
        id: str,
        name: str,
        input_text: str,
        output_text: str,
        max_points: int = 100,
        instructions_text: str = "",
        input_file_url: str = "",
        output_file_url: str = "",
        instructions_file_url: str = "",
        windows_file_url: str = "",
        object_file_url: str = "",
    ):
        if max_points <= 0:
            raise ValueError(f"max_points must be positive, got {max_points}")
        self.id = id
        self.name = name
        self.max_points = max_points
        # stdin for the execution and the text the output is graded against
        self.input_text = input_text
        self.output_text = output_text
        self.instructions_text = instructions_text
        # Download links shown to participants, never read by the judge
        self.input_file_url = input_file_url
        self.output_file_url = output_file_url
        self.instructions_file_url = instructions_file_url
        self.windows_file_url = windows_file_url
        self.object_file_url = object_file_url

    def to_dict(self, include_texts: bool = False) -> Dict:
        result = {
            "id": self.id,
            "name": self.name,
            "max_points": self.max_points,
            "input_file_url": self.input_file_url,
            "output_file_url": self.output_file_url,
            "instructions_file_url": self.instructions_file_url,
            "windows_file_url": self.windows_file_url,
            "object_file_url": self.object_file_url,
        }
        if include_texts:
            result["input_text"] = self.input_text
            result["output_text"] = self.output_text
            result["instructions_text"] = self.instructions_text
        return result


class Team:
    def __init__(self, id: str, name: str, points: int = 0):
        self.id = id
        self.name = name
        # Sum over problems of the team's best submission points
        self.points = points

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "points": self.points,
        }


class Submission:
    def __init__(
        self,
        id: str,
        token: str,
        team_id: str,
        problem_id: str,
        language: int,
        code: str,
        state: CodeState = CodeState.IN_QUEUE,
        points: int = 0,
        best: bool = False,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.id = id
        self.token = token
        self.team_id = team_id
        self.problem_id = problem_id
        self.language = language
        self.code = code
        self.state = state
        self.points = points
        self.best = best
        self.created_at = created_at or datetime.now()
        self.updated_at = updated_at or self.created_at

    def to_dict(self, include_code: bool = False) -> Dict:
        result = {
            "id": self.id,
            "token": self.token,
            "team_id": self.team_id,
            "problem_id": self.problem_id,
            "language": self.language,
            "state": self.state.value,  # Use .value for enum serialization
            "points": self.points,
            "best": self.best,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_code:
            result["code"] = self.code
        return result
