"""
Client for the external PDF parser service.

Dispatch is fire-and-forget from the caller's perspective: it runs as a
background task after the upload response and its outcome is only logged.
A failed dispatch leaves the run in 'processing'.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from backoffice.core.config import Settings

logger = logging.getLogger(__name__)


class ParserUnavailableError(Exception):
    """Raised when the parser responds with a retryable status."""
    pass


@dataclass
class DispatchRequest:
    """Payload sent to the parser for one job."""
    job_id: str
    intake_id: str
    file_path: str
    bucket: str
    callback_url: str

    def to_payload(self) -> dict:
        return {
            "job_id": self.job_id,
            "intake_id": self.intake_id,
            "file_path": self.file_path,
            "bucket": self.bucket,
            "callback_url": self.callback_url,
        }


@dataclass
class DispatchOutcome:
    job_id: str
    delivered: bool
    detail: str


class ParserClient:
    """
    Notifies the parser of new jobs.

    Features:
    - Exponential backoff on 429/5xx and timeouts
    - Never raises from dispatch(); outcome is returned and logged
    """

    def __init__(self, dispatch_url: Optional[str], client: Optional[httpx.Client] = None):
        self.dispatch_url = dispatch_url
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=10.0)
        return self._client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((ParserUnavailableError, httpx.TransportError)),
        reraise=True,
    )
    def _post(self, payload: dict) -> httpx.Response:
        response = self._get_client().post(self.dispatch_url, json=payload)
        if response.status_code == 429 or response.status_code >= 500:
            raise ParserUnavailableError(
                f"Parser unavailable ({response.status_code}): {self.dispatch_url}"
            )
        response.raise_for_status()
        return response

    def dispatch(self, request: DispatchRequest) -> DispatchOutcome:
        """Send a job to the parser and log the outcome."""
        if not self.dispatch_url:
            logger.warning(
                "PARSER_DISPATCH_URL not configured; job %s not dispatched", request.job_id
            )
            return DispatchOutcome(request.job_id, False, "dispatch url not configured")

        try:
            self._post(request.to_payload())
        except (ParserUnavailableError, httpx.HTTPError) as e:
            logger.error("Dispatch of job %s failed: %s", request.job_id, e)
            return DispatchOutcome(request.job_id, False, str(e))
        finally:
            self.close()

        logger.info("Dispatched job %s for intake %s", request.job_id, request.intake_id)
        return DispatchOutcome(request.job_id, True, "delivered")

    def close(self):
        if self._client and self._owns_client:
            self._client.close()
            self._client = None


def get_parser_client(settings: Settings) -> ParserClient:
    return ParserClient(settings.PARSER_DISPATCH_URL)


def dispatch_job(settings: Settings, request: DispatchRequest) -> DispatchOutcome:
    """Background task entry point for a new intake job."""
    return get_parser_client(settings).dispatch(request)
