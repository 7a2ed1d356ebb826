"""
Client for the PDF rendering worker.

The worker renders HTML to PDF, stores it and answers with a durable
(signed) URL. Every failure surfaces as ``RenderError``; nothing is retried.
"""

import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import httpx

from ..config.loader import DelegateConfig
from ..core.errors import RenderError
from ..utils.logger import get_logger

logger = get_logger(__name__)

SECRET_HEADER = "x-worker-secret"
RENDER_PATH = "/render-and-upload"

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class DelegateResult:
    """Where the rendered PDF can be downloaded."""
    url: str
    path: Optional[str] = None


def derive_pdf_filename(child_name: str, now: Optional[datetime] = None) -> str:
    """Filename for a storybook PDF.

    Whitespace runs in the name collapse to ``_`` and a millisecond epoch
    suffix keeps successive renders from colliding.
    """
    millis = int(now.timestamp() * 1000) if now else int(time.time() * 1000)
    stem = _WHITESPACE.sub("_", child_name)
    return f"{stem}-{millis}.pdf"


class PdfDelegateClient:
    """Sends rendered HTML to the worker over an authenticated call."""

    def __init__(self, config: DelegateConfig, http_client: Optional[httpx.Client] = None):
        """Initialize the client.

        Args:
            config: Worker URL, shared secret and timeout
            http_client: Optional preconfigured httpx client

        Raises:
            ValueError: If no worker URL is configured
        """
        if not config.url:
            raise ValueError("delegate url is required")
        self.config = config
        self.base_url = config.url.rstrip("/")
        self._client = http_client or httpx.Client(timeout=config.timeout_seconds)

    def render_and_upload(self, html: str, filename: str) -> DelegateResult:
        """Render ``html`` to a PDF named ``filename`` and return its URL.

        Raises:
            RenderError: On auth rejection, render/storage failure,
                transport error, or a response without ``publicUrl``
        """
        try:
            response = self._client.post(
                f"{self.base_url}{RENDER_PATH}",
                json={"html": html, "filename": filename},
                headers={SECRET_HEADER: self.config.secret},
            )
        except httpx.HTTPError as e:
            logger.error("Worker error: %s", e)
            raise RenderError(f"Worker request failed: {e}", details=str(e)) from e

        if response.is_error:
            details = _response_details(response)
            logger.error("Worker error: HTTP %d %s", response.status_code, details)
            raise RenderError(
                f"Worker responded with HTTP {response.status_code}",
                details=details,
            )

        try:
            payload = response.json()
        except ValueError as e:
            logger.error("Worker error: response is not JSON")
            raise RenderError("Worker response is not JSON", details=response.text) from e

        url = payload.get("publicUrl") if isinstance(payload, dict) else None
        if not url:
            logger.error("Worker error: response missing publicUrl")
            raise RenderError("Worker response missing publicUrl", details=payload)

        return DelegateResult(url=url, path=payload.get("path"))

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()


def _response_details(response: httpx.Response) -> Any:
    """JSON body of an error response when parseable, else raw text."""
    try:
        return response.json()
    except ValueError:
        return response.text
