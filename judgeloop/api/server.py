from typing import Any, Optional, Tuple

from flask import Flask, Response, current_app, jsonify, request

from ..engine.errors import JudgeError
from ..engine.execution import ExecutionClient
from ..engine.orchestrator import SubmissionOrchestrator
from ..engine.storage import DuckDBStorage
from ..utils.config_manager import ConfigManager, get_config
from ..utils.logger_config import get_logger

logger = get_logger("server")


# Helper functions
def success_response(data: Any = None, message: str = "Success") -> Response:
    """
    Create a standardized success response.

    Args:
        data: Optional data to include in response
        message: Success message string

    Returns:
        Flask Response object with success status
    """
    response = {
        "status": "success",
        "message": message
    }
    if data is not None:
        response["data"] = data
    return jsonify(response)


def error_response(message: str, status_code: int = 400) -> Tuple[Response, int]:
    """
    Create a standardized error response.

    Args:
        message: Error message string
        status_code: HTTP status code (default: 400)

    Returns:
        Tuple of (Flask Response object, status code)
    """
    response = {
        "status": "error",
        "message": message
    }
    return jsonify(response), status_code


def _get_orchestrator() -> SubmissionOrchestrator:
    return current_app.extensions["orchestrator"]


def build_orchestrator(config: ConfigManager) -> SubmissionOrchestrator:
    """Wire storage and execution client from configuration"""
    storage = DuckDBStorage(
        db_path=config.get("database.path"),
        conflict_retries=int(config.get("database.conflict_retries", 5)),
    )
    execution_client = ExecutionClient(
        endpoint=config.get("execution_service.endpoint"),
        callback_url=config.get("execution_service.callback_url"),
        timeout=float(config.get("execution_service.timeout", 10)),
    )
    return SubmissionOrchestrator(storage, execution_client)


def register_routes(app: Flask) -> None:

    @app.errorhandler(JudgeError)
    def handle_judge_error(e: JudgeError):
        return error_response(e.message, e.status_code)

    @app.route("/api/submissions/create", methods=["POST"])
    def create_submission():
        """
        Create a new submission and dispatch it for execution.

        Request Body:
            code: Source code for the solution
            language: Programming language label, e.g. "cpp"
            problem_id: Problem identifier
            team_id: Team identifier

        Returns:
            Submission details with the token to poll for results
        """
        data = request.get_json(silent=True)
        if not data or not isinstance(data, dict):
            return error_response("No JSON data provided", 400)

        missing = [field for field in ("code", "language", "problem_id", "team_id") if not data.get(field)]
        if missing:
            return error_response(f"Missing required fields: {', '.join(missing)}", 400)

        not_text = [field for field in ("code", "language", "problem_id", "team_id") if not isinstance(data[field], str)]
        if not_text:
            return error_response(f"Fields must be strings: {', '.join(not_text)}", 400)

        try:
            submission = _get_orchestrator().create(
                code=data["code"],
                language=data["language"],
                problem_id=data["problem_id"],
                team_id=data["team_id"],
            )
        except JudgeError:
            raise
        except Exception as e:
            logger.error(f"Failed to create submission: {e}", exc_info=True)
            return error_response(f"Failed to create submission: {str(e)}", 500)

        return success_response(submission.to_dict(), "Submission queued")

    @app.route("/api/submissions/callback", methods=["PUT", "POST"])
    def submission_callback():
        """
        Receive the result of a submission from the execution service.

        Request Body:
            token: Execution service token
            status: {"id": int, "description": str}
            stdout: base64 encoded output, may be null

        Returns:
            Acknowledgement carrying only the outcome name
        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not data.get("token"):
            return error_response("Callback without token", 400)
        if not isinstance(data["token"], str):
            return error_response("Callback token must be a string", 400)
        if not isinstance(data.get("stdout"), (str, type(None))):
            return error_response("Callback stdout must be base64 text or null", 400)

        status = data.get("status")
        try:
            status_id = int(status["id"])
        except (TypeError, KeyError, ValueError):
            return error_response("Callback without status id", 400)

        try:
            outcome = _get_orchestrator().handle_callback(data["token"], status_id, data.get("stdout"))
        except JudgeError:
            raise
        except Exception as e:
            logger.error(f"Failed to handle callback for {data['token']}: {e}", exc_info=True)
            return error_response("Failed to handle callback", 500)

        return success_response({"outcome": outcome.value}, "Callback received")

    @app.route("/api/submissions/get/<token>", methods=["GET"])
    def get_submission(token: str):
        """
        Get submission details by execution token.

        Query Parameters:
            include_code: If "true", includes source code in response
        """
        include_code = request.args.get("include_code", "false").lower() == "true"
        submission = _get_orchestrator().find_by_token(token)
        return success_response(submission.to_dict(include_code=include_code))

    @app.route("/api/submissions/list", methods=["GET"])
    def list_submissions():
        """
        List submissions, optionally filtered by team_id and problem_id.
        """
        submissions = _get_orchestrator().list_submissions(
            team_id=request.args.get("team_id"),
            problem_id=request.args.get("problem_id"),
        )
        return success_response([s.to_dict() for s in submissions])

    @app.route("/api/submissions/refresh/<token>", methods=["POST"])
    def refresh_submission(token: str):
        """Poll the execution service for a submission whose callback never arrived"""
        outcome = _get_orchestrator().refresh(token)
        return success_response({"outcome": outcome.value})

    @app.route("/api/system/health", methods=["GET"])
    def health():
        return success_response(_get_orchestrator().storage.get_storage_info())


def create_app(config: Optional[ConfigManager] = None,
               orchestrator: Optional[SubmissionOrchestrator] = None) -> Flask:
    """
    Create the Flask application.

    Args:
        config: Configuration, the global one when omitted
        orchestrator: Prebuilt orchestrator, built from config when omitted
    """
    app = Flask(__name__)
    if orchestrator is None:
        orchestrator = build_orchestrator(config or get_config())
    app.extensions["orchestrator"] = orchestrator
    register_routes(app)
    logger.info("Created Flask application")
    return app
