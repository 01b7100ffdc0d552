import base64
import binascii
from typing import Any, Dict, Optional

import requests

from .errors import DispatchFailed
from ..utils.logger_config import get_logger

logger = get_logger("execution")


def encode_base64(text: str) -> str:
    return base64.b64encode((text or "").encode("utf-8")).decode("ascii")


def decode_base64(data: Optional[str]) -> str:
    """Decode base64 text from the execution service, never failing on bad input"""
    if not data:
        return ""
    try:
        raw = base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError, TypeError):
        logger.warning("Received undecodable base64 output, treating it as empty")
        return ""
    return raw.decode("utf-8", errors="replace")


class ExecutionClient:
    """
    Client for the external sandboxed execution service (Judge0 API).

    Submissions are created asynchronously: the service answers with a
    token right away and later calls callback_url with the result.
    """
    def __init__(
        self,
        endpoint: str = "http://localhost:2358",
        callback_url: str = "http://localhost:5000/api/submissions/callback",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.callback_url = callback_url
        self.timeout = timeout
        self.session = session or requests.Session()
        logger.debug(f"Initialized execution client at {self.endpoint}")

    def submit(self, code: str, language_id: int, stdin: str, expected_output: str) -> str:
        """
        Dispatch code for execution and return the correlation token.

        Raises:
            DispatchFailed: On timeout, connection error, non-2xx answer or
                an answer without a token.
        """
        payload = {
            "source_code": encode_base64(code),
            "language_id": language_id,
            "callback_url": self.callback_url,
            "expected_output": encode_base64(expected_output),
            "stdin": encode_base64(stdin),
        }
        data = self._request(
            "POST",
            "/submissions",
            params={"base64_encoded": "true", "wait": "false"},
            json=payload,
        )
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise DispatchFailed(f"Execution service returned no token: {data!r}")
        logger.debug(f"Dispatched submission, token {token}")
        return token

    def fetch(self, token: str) -> Dict[str, Any]:
        """Fetch the current result of a submission, shaped like a callback body"""
        data = self._request(
            "GET",
            f"/submissions/{token}",
            params={"base64_encoded": "true", "fields": "token,status,stdout"},
        )
        if not isinstance(data, dict):
            raise DispatchFailed(f"Unexpected answer for token {token}: {data!r}")
        return data

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.endpoint}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.Timeout as e:
            logger.error(f"{method} {url} timed out after {self.timeout}s")
            raise DispatchFailed(f"Execution service timed out: {e}") from e
        except requests.HTTPError as e:
            logger.error(f"{method} {url} failed with status {e.response.status_code}")
            raise DispatchFailed(f"Execution service answered {e.response.status_code}") from e
        except requests.RequestException as e:
            logger.error(f"{method} {url} failed: {e}")
            raise DispatchFailed(f"Execution service unreachable: {e}") from e
        except ValueError as e:
            raise DispatchFailed("Execution service returned invalid JSON") from e

    def close(self) -> None:
        self.session.close()
