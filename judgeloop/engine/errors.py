"""Error kinds raised by the submission pipeline.

Each error carries the HTTP status the API layer answers with.
"""


class JudgeError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidLanguage(JudgeError):
    def __init__(self, label: str):
        super().__init__(f"Code language not accepted: {label!r}")
        self.label = label


class ProblemNotFound(JudgeError):
    def __init__(self, problem_id: str):
        super().__init__(f"No problem with id:{problem_id}")
        self.problem_id = problem_id


class TeamNotFound(JudgeError):
    def __init__(self, team_id: str):
        super().__init__(f"No team with id:{team_id}")
        self.team_id = team_id


class UnknownToken(JudgeError):
    def __init__(self, token: str):
        super().__init__(f"submission with token {token} not found")
        self.token = token


class SubmissionNotFound(JudgeError):
    status_code = 404

    def __init__(self, token: str):
        super().__init__(f"No submission for token {token}")
        self.token = token


class DispatchFailed(JudgeError):
    """The execution service could not be reached or refused the request"""
    status_code = 502
