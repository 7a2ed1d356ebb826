"""
Storybook generation pipeline.

Stage order:
1. Quota check - reserve one call from the monthly allowance
2. Prompt building - aggregate the child's memories
3. Content generation - language model (or placeholder)
4. Rendering - themed HTML
5. PDF delegation - optional, only when requested and configured

Any failure ends the request in the FAILED state; the raised error records
the stage it happened in. Nothing is resumed or retried.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from ..sdk.delegate_client import PdfDelegateClient, derive_pdf_filename
from ..sdk.openai_client import ContentGenerator
from ..storage.models import Child, Memory
from ..storage.repository import SQLiteStore, StoryStore
from ..utils.logger import get_logger
from .errors import (
    MemorybookError,
    NotFoundError,
    QuotaExceeded,
    StorageReadError,
    ValidationError,
)
from .prompt import build_prompt
from .quota import QuotaLedger, current_period_start
from .themes import DEFAULT_THEME, ThemeRenderer

logger = get_logger(__name__)

DEFAULT_INTERVAL = "monthly"
DEFAULT_CHILD_NAME = "Your child"


class GenerationStage(Enum):
    """States a generation request passes through."""
    RECEIVED = "received"
    QUOTA_CHECKED = "quota_checked"
    PROMPT_BUILT = "prompt_built"
    CONTENT_GENERATED = "content_generated"
    RENDERED = "rendered"
    PDF_DELEGATED = "pdf_delegated"
    RESPONDED = "responded"
    FAILED = "failed"


@dataclass(frozen=True)
class GenerationRequest:
    """Transient description of what to generate."""
    child_id: Optional[int]
    interval: str = DEFAULT_INTERVAL
    theme: str = DEFAULT_THEME
    pdf: bool = False


@dataclass(frozen=True)
class StoryArtifact:
    """Result of a successful generation."""
    story_html: str
    generated_at: str
    pdf_url: Optional[str] = None
    stages: tuple = ()

    def to_response(self) -> dict:
        """JSON body returned to HTTP callers."""
        body = {"storyHtml": self.story_html}
        if self.pdf_url is not None:
            body["pdfUrl"] = self.pdf_url
        body["generatedAt"] = self.generated_at
        return body


def _isoformat_utc(moment: datetime) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and ``Z`` suffix."""
    stamp = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


class StoryPipeline:
    """Runs one generation request from quota check to response.

    All collaborators are passed in so each can be substituted in tests.
    """

    def __init__(
        self,
        store: StoryStore,
        ledger: QuotaLedger,
        generator: ContentGenerator,
        renderer: ThemeRenderer,
        delegate: Optional[PdfDelegateClient] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.generator = generator
        self.renderer = renderer
        self.delegate = delegate

    def generate(self, user_id: str, request: GenerationRequest,
                 now: Optional[datetime] = None) -> StoryArtifact:
        """Generate a storybook for ``request`` on behalf of ``user_id``.

        Args:
            user_id: Authenticated caller
            request: What to generate
            now: Reference time for the billing period (defaults to now)

        Returns:
            StoryArtifact with the HTML and, if delegated, the PDF URL

        Raises:
            ValidationError: If child_id is missing or not positive
            QuotaExceeded: If the period's allowance is used up
            StorageReadError: If the ledger or memories cannot be read
            NotFoundError: If the child belongs to another user
            ProviderError: If the language model call fails
            RenderError: If the PDF worker fails (HTML and usage already committed)
        """
        stages: List[GenerationStage] = [GenerationStage.RECEIVED]

        def advance(stage: GenerationStage) -> None:
            stages.append(stage)
            logger.debug("Generation for user %s child %s: %s",
                         user_id, request.child_id, stage.value)

        if not request.child_id or request.child_id <= 0:
            raise ValidationError("childId required", code="childId required",
                                  stage=GenerationStage.RECEIVED.value)

        period_start = current_period_start(now)
        try:
            decision = self.ledger.check_and_reserve(user_id, period_start)
        except StorageReadError as e:
            logger.error("Usage read error: %s", e.details)
            raise self._failed(e, GenerationStage.RECEIVED, code="usage_read_failed")

        if not decision.allowed:
            raise self._failed(
                QuotaExceeded(self.ledger.quota, decision.current_calls),
                GenerationStage.QUOTA_CHECKED,
            )
        advance(GenerationStage.QUOTA_CHECKED)

        try:
            child, memories = self._load_child(user_id, request.child_id)
            child_name = child.name if child else DEFAULT_CHILD_NAME
            prompt = build_prompt(child_name, request.interval, memories)
            advance(GenerationStage.PROMPT_BUILT)

            content = self.generator.generate(prompt, child_name=child_name)
            advance(GenerationStage.CONTENT_GENERATED)

            story_html = self.renderer.render(request.theme, child_name, request.interval, content)
            advance(GenerationStage.RENDERED)
        except MemorybookError as e:
            self.ledger.release(user_id, period_start)
            raise self._failed(e, stages[-1])
        except Exception:
            logger.exception("Unexpected error after %s", stages[-1].value)
            self.ledger.release(user_id, period_start)
            raise

        pdf_url = None
        if request.pdf and self.delegate is not None:
            filename = derive_pdf_filename(child_name, now)
            try:
                result = self.delegate.render_and_upload(story_html, filename)
            except MemorybookError as e:
                raise self._failed(e, GenerationStage.RENDERED)
            pdf_url = result.url
            advance(GenerationStage.PDF_DELEGATED)

        advance(GenerationStage.RESPONDED)
        return StoryArtifact(
            story_html=story_html,
            generated_at=_isoformat_utc(datetime.now(timezone.utc)),
            pdf_url=pdf_url,
            stages=tuple(stage.value for stage in stages),
        )

    def _load_child(self, user_id: str, child_id: int):
        """Fetch the child and its memories; a missing child is not an error."""
        try:
            child: Optional[Child] = self.store.get_child(child_id)
            if child is not None and child.user_id != user_id:
                raise NotFoundError("Child not found", code="child_not_found")
            memories: List[Memory] = self.store.list_memories(child_id)
        except StorageReadError as e:
            logger.error("Memory read error: %s", e.details)
            e.code = "memories_read_failed"
            raise
        return child, memories

    def close(self) -> None:
        """Release the delegate's HTTP connections."""
        if self.delegate is not None:
            self.delegate.close()

    @staticmethod
    def _failed(error: MemorybookError, last_stage: GenerationStage,
                code: Optional[str] = None) -> MemorybookError:
        """Mark ``error`` as the terminal FAILED transition after ``last_stage``."""
        error.stage = last_stage.value
        if code is not None:
            error.code = code
        logger.info("Generation failed after %s: %s", last_stage.value, error.code)
        return error


def build_pipeline(config, store: Optional[StoryStore] = None) -> StoryPipeline:
    """Wire a pipeline from an ``AppConfig``.

    The PDF delegate client is only created when a worker URL is configured.
    """
    store = store or SQLiteStore(config.storage.db_path)
    delegate = PdfDelegateClient(config.delegate) if config.delegate.enabled else None
    return StoryPipeline(
        store=store,
        ledger=QuotaLedger(store, quota=config.quota.free_monthly_calls),
        generator=ContentGenerator(config.generator),
        renderer=ThemeRenderer(),
        delegate=delegate,
    )
