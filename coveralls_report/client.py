"""Coveralls upload client.

Usage:
    client = CoverallsClient(endpoint="https://coveralls.io")
    result = client.post_file("coveralls.json")
    if result.error:
        ...

``post_file`` never raises for transport or API failures; they come back as
an :class:`UploadResult` with ``error=True``.
"""

from pathlib import Path

import requests

from coveralls_report.models import UploadResult

DEFAULT_ENDPOINT = "https://coveralls.io"
JOBS_PATH = "/api/v1/jobs"

#: Message Coveralls returns when neither the token nor the job id match a repo
TOKEN_ERROR_STRING = "Couldn't find a repository matching this job."


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class UploadError(Exception):
    """Base exception for all upload errors."""

    kind = "upload"


class NetworkError(UploadError):
    """Raised on connection timeout, unreachable server or unusable response."""

    kind = "network"


class APIError(UploadError):
    """Raised when Coveralls answers with ``"error": true``."""

    kind = "api"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class CoverallsClient:
    """Posts payload files to the Coveralls jobs API.

    *session* may be any object with a ``requests.Session``-compatible
    ``post`` method, which lets tests substitute a fake transport.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        session: requests.Session | None = None,
        timeout: int = 60,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._session = session if session is not None else requests.Session()

    @property
    def jobs_url(self) -> str:
        return f"{self.endpoint}{JOBS_PATH}"

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def post_file(self, payload_path: str | Path) -> UploadResult:
        """Upload *payload_path* as the ``json_file`` multipart field."""
        try:
            body = self._post(Path(payload_path))
        except UploadError as exc:
            return UploadResult(error=True, message=str(exc), kind=exc.kind)

        message = str(body.get("message") or "")
        url = str(body.get("url") or "")
        if body.get("error"):
            message = message or "Coveralls reported an error without a message"
            return UploadResult(error=True, message=message, url=url, kind=APIError.kind)
        return UploadResult(error=False, message=message, url=url)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _post(self, payload_path: Path) -> dict:
        url = self.jobs_url
        try:
            with payload_path.open("rb") as fh:
                response = self._session.post(
                    url,
                    files={"json_file": (payload_path.name, fh, "application/json; charset=utf-8")},
                    timeout=self._timeout,
                )
        except requests.exceptions.RequestException as exc:
            raise self._transport_error(exc, url) from exc
        except OSError as exc:
            raise NetworkError(f"Unable to read payload file '{payload_path}': {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise NetworkError(
                f"Unexpected response {response.status_code} from {url}: {response.text[:200]!r}"
            ) from exc

        if not isinstance(body, dict):
            raise NetworkError(
                f"Malformed response {response.status_code} from {url}: {response.text[:200]!r}"
            )
        if not response.ok and not body.get("error"):
            raise NetworkError(
                f"Unexpected response {response.status_code} from {url}: {body.get('message', '')}"
            )
        return body

    def _transport_error(self, exc: Exception, url: str) -> NetworkError:
        if isinstance(exc, requests.exceptions.Timeout):
            return NetworkError(f"Request timed out after {self._timeout}s while contacting '{url}'")
        if isinstance(exc, requests.exceptions.ConnectionError):
            return NetworkError(f"Unable to reach Coveralls at '{self.endpoint}'")
        return NetworkError(f"Upload to '{url}' failed: {exc}")


def describe_failure(result: UploadResult, endpoint: str) -> str:
    """Caller-facing message for a failed upload, with a token hint if relevant."""
    message = f"Uploading to {endpoint} failed: {result.message}"
    if TOKEN_ERROR_STRING in result.message:
        message += (
            f"\nThe error message '{TOKEN_ERROR_STRING}' can mean your repo token is incorrect."
        )
    return message
