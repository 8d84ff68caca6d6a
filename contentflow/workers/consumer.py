"""
Content stream consumer.

Long-lived asyncio worker that reads submissions from the content stream
through a consumer group and moves each one to a terminal status.

Per message:
- Received:  load the stored record (already terminal: ack and skip)
- Analyzed:  ContentAnalyzer.analyze
- Enriched:  embedding, vector upsert, duplicate signal, metrics (once)
- Recorded:  terminal record written to the document store
- Acked:     XACK only after the record is stored
- Published: ProcessedEvent to every channel (best-effort)

Any failure between Analyzed and Recorded turns the item into an error
record. If even that write fails the entry stays pending and is reclaimed
later by XAUTOCLAIM.
"""

import asyncio
import secrets
import time
from typing import List, Optional

from contentflow.core.exceptions import AnalysisError, FatalStartupError
from contentflow.core.logging import get_logger
from contentflow.core.retry import retry_async
from contentflow.db.base import StreamMessage
from contentflow.models.content import AnalysisResult, ContentItem, ContentStatus, ProcessedEvent
from contentflow.services.context import PipelineContext
from contentflow.services.embedder import content_fingerprint

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _elapsed_ms(started: float) -> int:
    return max(int((time.perf_counter() - started) * 1000), 0)


def make_consumer_name(prefix: str) -> str:
    """Process-unique consumer name: ``{prefix}-{start_ms}-{random hex}``."""
    return f"{prefix}-{_now_ms()}-{secrets.token_hex(4)}"


class ContentStreamConsumer:
    """
    Consumer-group worker for the content stream.

    Usage:
    ------
    consumer = ContentStreamConsumer(context)
    await consumer.start()
    ...
    await consumer.stop()
    """

    def __init__(self, context: PipelineContext, consumer_name: Optional[str] = None):
        self.context = context
        self.settings = context.settings
        self.consumer_name = consumer_name or make_consumer_name(
            self.settings.CONSUMER_NAME_PREFIX
        )
        self.stream = self.settings.CONTENT_STREAM_KEY
        self.group = self.settings.CONSUMER_GROUP

        self.degraded = False
        self._processing = False
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._last_claim: Optional[float] = None

        self.log = logger.bind(consumer=self.consumer_name)

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ========================================
    # Lifecycle
    # ========================================

    async def initialize(self) -> None:
        """
        Create the consumer group, vector index, time series and duplicate
        filter. Only the group is required; other failures degrade the worker.
        """
        await retry_async(
            lambda: self.context.stream_log.create_group(self.stream, self.group, "0"),
            description=f"XGROUP CREATE {self.group}",
        )

        try:
            await self.context.vector_search.initialize()
        except Exception as e:
            self.degraded = True
            self.log.error(
                "vector_index_unavailable",
                error=str(FatalStartupError("vector index", e)),
            )

        try:
            await self.context.metrics.ensure_series()
        except FatalStartupError as e:
            self.log.error("metrics_series_unavailable", error=str(e))

        try:
            await self.context.duplicates.initialize()
        except Exception as e:
            self.log.error(
                "duplicate_filter_unavailable",
                error=str(FatalStartupError("duplicate filter", e)),
            )

    async def start(self) -> None:
        """Initialize and spawn the processing loop."""
        if self.is_running:
            return
        await self.initialize()
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name=f"consumer:{self.consumer_name}")
        self.log.info(
            "consumer_started",
            stream=self.stream,
            group=self.group,
            degraded=self.degraded,
        )

    async def stop(self) -> None:
        """
        Request a cooperative stop and wait for the loop to exit.

        A message already being processed runs to completion.
        """
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
        self.log.info("consumer_stopped")

    async def run_forever(self) -> None:
        """Start and block until ``stop()`` is called."""
        await self.start()
        if self._task is not None:
            await self._task

    async def _sleep(self, seconds: float) -> None:
        """Sleep, waking early when a stop is requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    # ========================================
    # Loop
    # ========================================

    def _claim_due(self) -> bool:
        now = time.monotonic()
        if (
            self._last_claim is None
            or now - self._last_claim >= self.settings.CONSUMER_CLAIM_INTERVAL_SECONDS
        ):
            self._last_claim = now
            return True
        return False

    async def _pull(self) -> List[StreamMessage]:
        if self._claim_due():
            reclaimed = await self.context.stream_log.claim_stale(
                self.stream,
                self.group,
                self.consumer_name,
                self.settings.CONSUMER_CLAIM_IDLE_MS,
                self.settings.CONSUMER_BATCH_SIZE,
            )
            if reclaimed:
                self.log.info("stale_messages_claimed", count=len(reclaimed))
                return reclaimed

        return await self.context.stream_log.read_group(
            self.stream,
            self.group,
            self.consumer_name,
            self.settings.CONSUMER_BATCH_SIZE,
            self.settings.CONSUMER_BLOCK_MS,
        )

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                messages = await self._pull()
            except Exception as e:
                self.log.error("stream_read_failed", error=str(e))
                await self._sleep(self.settings.CONSUMER_ERROR_SLEEP_SECONDS)
                continue

            if not messages:
                await self._sleep(self.settings.CONSUMER_IDLE_SLEEP_SECONDS)
                continue

            await self.process_batch(messages)

    async def process_batch(self, messages: List[StreamMessage]) -> int:
        """
        Process messages one at a time.

        Returns:
            Number of messages acknowledged
        """
        acked = 0
        for message in messages:
            if self._stop_event.is_set():
                break
            self._processing = True
            try:
                if await self.process_message(message):
                    acked += 1
            except Exception as e:
                self.log.exception("message_handler_crashed", message_id=message.id, error=str(e))
            finally:
                self._processing = False
        return acked

    # ========================================
    # Message Processing
    # ========================================

    def _content_key(self, content_id: str) -> str:
        return f"{self.settings.CONTENT_KEY_PREFIX}{content_id}"

    def _item_from_message(self, message: StreamMessage) -> ContentItem:
        fields = message.fields
        try:
            submitted_at = int(fields.get("timestamp", ""))
        except ValueError:
            submitted_at = _now_ms()
        return ContentItem(
            id=fields["contentId"],
            text=fields.get("text", ""),
            category=fields.get("category") or "general",
            user_id=fields.get("userId") or "anonymous",
            source=fields.get("source") or "web",
            submitted_at=submitted_at,
            stream_id=message.id,
        )

    async def _ack(self, message: StreamMessage) -> bool:
        try:
            await retry_async(
                lambda: self.context.stream_log.ack(self.stream, self.group, message.id),
                description=f"XACK {message.id}",
            )
            return True
        except Exception as e:
            self.log.error("ack_failed", message_id=message.id, error=str(e))
            return False

    async def _write(self, item: ContentItem) -> None:
        await retry_async(
            lambda: self.context.documents.put(self._content_key(item.id), item.to_document()),
            description=f"content record {item.id}",
        )

    async def process_message(self, message: StreamMessage) -> bool:
        """
        Drive one stream entry to a terminal status.

        Returns:
            True when the entry was acknowledged
        """
        started = time.perf_counter()
        content_id = message.fields.get("contentId")
        if not content_id:
            self.log.warning("message_without_content_id", message_id=message.id)
            return await self._ack(message)

        log = self.log.bind(content_id=content_id, message_id=message.id)
        item: Optional[ContentItem] = None
        analysis: Optional[AnalysisResult] = None

        try:
            stored = await retry_async(
                lambda: self.context.documents.get(self._content_key(content_id)),
                description=f"load content {content_id}",
            )
            if stored is not None:
                item = ContentItem.from_document(stored)
                if item.status.is_terminal:
                    log.info("redelivery_skipped", status=item.status.value)
                    return await self._ack(message)
            else:
                item = self._item_from_message(message)

            if "text" not in message.fields:
                raise ValueError("stream entry has no text")

            # Analyzed
            analysis = self.context.analyzer.analyze(item.text, item.category)
            if analysis.degraded:
                raise AnalysisError(analysis.error)
            status = ContentStatus.FLAGGED if analysis.is_toxic else ContentStatus.APPROVED

            # Enriched
            vector = self.context.embedder.embed(item.text)
            if self.degraded:
                log.warning("vector_upsert_skipped")
            else:
                await self.context.vector_search.store_content_vector(
                    content_id, item.text, analysis, status, vector=vector
                )

            prior = await self.context.ledger.lookup(content_id)
            if prior is not None:
                is_duplicate = prior.is_duplicate
            else:
                is_duplicate = await retry_async(
                    lambda: self.context.duplicates.check_and_add(content_fingerprint(item.text)),
                    description=f"duplicate check {content_id}",
                )

            processed_at = _now_ms()
            processing_time_ms = _elapsed_ms(started)
            claim = await self.context.ledger.claim(content_id, is_duplicate)
            is_duplicate = claim.is_duplicate
            if claim.first:
                await self.context.metrics.record_processed(
                    status, analysis, processing_time_ms, processed_at
                )
            else:
                log.info("metrics_already_recorded")

            # Recorded
            final = item.apply_terminal(
                status,
                processed_at=processed_at,
                processing_time_ms=processing_time_ms,
                analysis=analysis,
                is_duplicate=is_duplicate,
            )
            if final.stream_id is None:
                final = final.model_copy(update={"stream_id": message.id})
            await self._write(final)

        except Exception as e:
            log.error("content_processing_failed", error=str(e), error_type=type(e).__name__)
            return await self._handle_failure(message, log, item, analysis, e, started)

        acked = await self._ack(message)
        log.info(
            "content_processed",
            status=status.value,
            toxicity=analysis.toxicity_score,
            duplicate=is_duplicate,
            processing_time_ms=processing_time_ms,
        )

        # Published
        event = ProcessedEvent(
            content_id=content_id,
            status=status,
            analysis=analysis,
            processing_time_ms=processing_time_ms,
            timestamp=processed_at,
            is_duplicate=is_duplicate,
        )
        await self.context.publisher.publish(event)
        return acked

    async def _handle_failure(
        self,
        message: StreamMessage,
        log,
        item: Optional[ContentItem],
        analysis: Optional[AnalysisResult],
        error: Exception,
        started: float
    ) -> bool:
        """Store an error record, count it once, and ack if the write succeeded."""
        processed_at = _now_ms()
        processing_time_ms = _elapsed_ms(started)
        base = item if item is not None else self._item_from_message(message)

        error_item = base.apply_terminal(
            ContentStatus.ERROR,
            processed_at=processed_at,
            processing_time_ms=processing_time_ms,
            analysis=analysis,
            error=str(error) or type(error).__name__,
        )
        if error_item.stream_id is None:
            error_item = error_item.model_copy(update={"stream_id": message.id})

        try:
            claim = await self.context.ledger.claim(base.id, False)
            if claim.first:
                await self.context.metrics.record_processed(
                    ContentStatus.ERROR, None, processing_time_ms, processed_at
                )
        except Exception as e:
            log.error("error_metrics_failed", error=str(e))

        try:
            await self._write(error_item)
        except Exception as e:
            log.error("error_record_write_failed", error=str(e))
            return False

        return await self._ack(message)
