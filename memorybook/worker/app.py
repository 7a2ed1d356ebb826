"""
PDF rendering worker.

Accepts rendered storybook HTML from the API, converts it to PDF and either
uploads it to the configured bucket and answers with a presigned URL, or
streams the PDF back directly when no bucket is configured.
"""

import hmac
import time
from typing import Callable, Optional
from urllib.parse import quote

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import FastAPI, Header
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from ..config.loader import WorkerConfig
from ..utils.logger import get_logger
from .object_store import PDF_CONTENT_TYPE, S3ObjectStore, build_object_store
from .pdf import render_pdf

logger = get_logger(__name__)

STORAGE_PREFIX = "pdfs"
DEFAULT_FILENAME = "storybook.pdf"


class RenderRequest(BaseModel):
    """Body of a render-and-upload call."""
    html: Optional[str] = None
    filename: Optional[str] = None


def _safe_filename(filename: Optional[str]) -> Optional[str]:
    """Strip directory components from a caller-supplied filename."""
    if not filename:
        return None
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    return name or None


def content_disposition(filename: str) -> str:
    """``attachment`` header value that survives any filename.

    Header values must be latin-1, so the plain ``filename`` parameter gets
    an ASCII-only copy and the real name travels in ``filename*``.
    """
    fallback = filename.encode("ascii", "ignore").decode("ascii")
    fallback = fallback.replace('"', "").replace("\\", "").strip() or DEFAULT_FILENAME
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def create_worker_app(
    config: Optional[WorkerConfig] = None,
    renderer: Callable[[str], bytes] = render_pdf,
    store: Optional[S3ObjectStore] = None,
) -> FastAPI:
    """Build the worker application.

    Args:
        config: Worker settings (secret, bucket, URL lifetime)
        renderer: Callable turning HTML into PDF bytes
        store: Object store; built from ``config.bucket`` when omitted

    Returns:
        FastAPI application
    """
    config = config or WorkerConfig()
    if store is None:
        store = build_object_store(config)

    app = FastAPI(title="memorybook PDF worker", version="0.1.0")
    app.state.config = config
    app.state.store = store

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/render-and-upload")
    def render_and_upload(
        body: RenderRequest,
        x_worker_secret: Optional[str] = Header(None, alias="x-worker-secret"),
    ):
        if not x_worker_secret or not hmac.compare_digest(x_worker_secret, config.secret):
            return JSONResponse(status_code=401, content={"error": "unauthorized"})
        if not body.html:
            return JSONResponse(status_code=400, content={"error": "html required"})

        filename = _safe_filename(body.filename)

        try:
            pdf_bytes = renderer(body.html)
        except Exception as e:
            logger.error("PDF render error: %s", e, exc_info=True)
            return JSONResponse(status_code=500,
                                content={"error": "render_failed", "details": str(e)})

        if store is None:
            return Response(
                content=pdf_bytes,
                media_type=PDF_CONTENT_TYPE,
                headers={"Content-Disposition": content_disposition(filename or DEFAULT_FILENAME)},
            )

        key = f"{STORAGE_PREFIX}/{filename or f'storybook-{int(time.time() * 1000)}.pdf'}"
        try:
            store.put(key, pdf_bytes)
        except (BotoCoreError, ClientError) as e:
            logger.error("Upload error: %s", e)
            return JSONResponse(status_code=500,
                                content={"error": "upload_failed", "details": str(e)})

        try:
            public_url = store.signed_url(key, config.url_ttl_seconds)
        except (BotoCoreError, ClientError) as e:
            logger.error("Signed URL error: %s", e)
            return JSONResponse(status_code=500,
                                content={"error": "signed_url_failed", "details": str(e)})

        logger.info("Rendered %s (%d bytes)", key, len(pdf_bytes))
        return {"publicUrl": public_url, "path": key}

    return app
