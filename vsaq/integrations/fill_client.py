"""
HTTP client for the respondent fill API.

``FillClient`` speaks the ``/api/v1/fill/<link>`` wire contract and
implements the same store protocol as ``LocalAnswerStore``, so a
``FillSession`` runs unchanged against a remote server:

    client = FillClient("https://vsaq.example.com")
    session = FillSession(client, link).load()
    session.set_answer("q1", "yes")

Status mapping:
    save    200 → SaveAccepted   409 → SaveConflict
            403 → SaveRejected(LOCKED)   404 → SaveRejected(NOT_FOUND)
            other status / network error → SaveFailed (version not advanced)
    fetch   404 → NotFoundError; other failures raise FillClientError
    submit  403 → AlreadySubmittedError; 404 → NotFoundError

Only reads are retried.  A save is never re-sent automatically: the caller
decides after seeing SaveFailed, which keeps per-field versions monotonic.

Testability: pass a mock ``session`` instead of letting the client create a
real requests.Session.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

from vsaq.core.exceptions import AlreadySubmittedError, NotFoundError
from vsaq.engine.fill_session import (
    REJECT_LOCKED,
    REJECT_NOT_FOUND,
    SaveAccepted,
    SaveConflict,
    SaveFailed,
    SaveOutcome,
    SaveRejected,
)

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10
_RETRY_BACKOFF_SECONDS = [1, 4]


class FillClientError(Exception):
    """Fill API call failed for a reason other than a mapped status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return resp.text[:200]


class FillClient:
    """Remote answer store over HTTP."""

    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        *,
        api_prefix: str = "/api/v1",
        timeout: float = _DEFAULT_TIMEOUT,
        retries: int = 2,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_prefix = "/" + api_prefix.strip("/")
        self.timeout = timeout
        self.retries = retries
        self._session = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _url(self, link: str, action: str | None = None) -> str:
        url = f"{self.base_url}{self.api_prefix}/fill/{link}"
        return f"{url}/{action}" if action else url

    # ── Store protocol ───────────────────────────────────────────────────────

    def fetch(self, link: str) -> dict:
        """GET the instance payload, retrying network errors and 5xx."""
        last_error = "Unknown error"
        last_status: int | None = None
        for attempt in range(self.retries + 1):
            try:
                resp = self.session.get(
                    self._url(link), headers={"Accept": "application/json"}, timeout=self.timeout,
                )
                last_status = resp.status_code
                if resp.status_code == 404:
                    raise NotFoundError(resource="Questionnaire")
                if resp.ok:
                    return resp.json()
                last_error = f"HTTP {resp.status_code}: {_error_message(resp)}"
                if resp.status_code < 500:
                    break
            except requests.RequestException as exc:
                last_error = str(exc)[:500]

            logger.warning("Fill fetch failed attempt=%d/%d: %s",
                           attempt + 1, self.retries + 1, last_error)
            if attempt < self.retries:
                time.sleep(_RETRY_BACKOFF_SECONDS[min(attempt, len(_RETRY_BACKOFF_SECONDS) - 1)])

        raise FillClientError(last_error, status_code=last_status)

    def save(self, link: str, question_id: str, value: Any, client_version: int) -> SaveOutcome:
        body = {"question_id": question_id, "answer_value": value, "version": client_version}
        try:
            resp = self.session.post(self._url(link, "save"), json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Fill save network error for %s: %s", question_id, exc)
            return SaveFailed(str(exc)[:500])

        match resp.status_code:
            case 200:
                data = resp.json()
                return SaveAccepted(version=int(data["version"]), updated_at=data.get("updated_at"))
            case 409:
                data = resp.json()
                return SaveConflict(
                    server_version=int(data["server_version"]), updated_at=data.get("updated_at"),
                )
            case 403:
                return SaveRejected(REJECT_LOCKED, _error_message(resp))
            case 404:
                return SaveRejected(REJECT_NOT_FOUND, _error_message(resp))
            case status:
                return SaveFailed(f"HTTP {status}: {_error_message(resp)}")

    def submit(self, link: str) -> None:
        try:
            resp = self.session.post(self._url(link, "submit"), json={}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise FillClientError(str(exc)[:500]) from exc

        if resp.status_code == 403:
            raise AlreadySubmittedError(_error_message(resp))
        if resp.status_code == 404:
            raise NotFoundError(resource="Questionnaire")
        if not resp.ok:
            raise FillClientError(f"HTTP {resp.status_code}: {_error_message(resp)}",
                                  status_code=resp.status_code)
