"""
Submission pipeline: language resolution, dispatch to the execution
service, callback handling and score aggregation.
"""

from .errors import (
    DispatchFailed, InvalidLanguage, JudgeError, ProblemNotFound,
    SubmissionNotFound, TeamNotFound, UnknownToken
)
from .execution import ExecutionClient
from .language import map_language
from .locks import KeyedLock
from .orchestrator import CallbackOutcome, SubmissionOrchestrator
from .referee import Referee, referee
from .states import CODE_STATES, map_status
from .storage import AggregationResult, DuckDBStorage

__all__ = [
    "DispatchFailed", "InvalidLanguage", "JudgeError", "ProblemNotFound",
    "SubmissionNotFound", "TeamNotFound", "UnknownToken",
    "ExecutionClient", "map_language", "KeyedLock", "CallbackOutcome",
    "SubmissionOrchestrator", "Referee", "referee", "CODE_STATES", "map_status",
    "AggregationResult", "DuckDBStorage",
]
