"""HTTP entry point for the transcription pipeline.

A FastAPI app served by uvicorn:

    POST /webhooks/rev-ai[?owner=<id>]  provider job notifications
    POST /jobs/{job_id}/summary         summarize a completed transcript
    GET  /healthz                       liveness check

Each completed transcription schedules its analysis as a background task.
uvicorn stops serving on SIGTERM/SIGINT; the provider, store and engine
clients are closed once it has drained.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from transcription_pipeline.analysis.analyzer import ChunkedAnalyzer
from transcription_pipeline.analysis.openai_engine import OpenAIAnalysisEngine
from transcription_pipeline.analysis.summarizer import TranscriptSummarizer
from transcription_pipeline.asr.registry import get_transcription_provider
from transcription_pipeline.config import Settings
from transcription_pipeline.jobs.models import AnalysisStatus, Job
from transcription_pipeline.jobs.poller import StatusPoller
from transcription_pipeline.jobs.reconciler import WebhookReconciler
from transcription_pipeline.jobs.submitter import JobSubmitter
from transcription_pipeline.observability.logger import StructuredJsonFormatter
from transcription_pipeline.pipeline import JobPipeline
from transcription_pipeline.storage.supabase_client import SupabaseJobStore
from transcription_pipeline.utils.errors import (
    JobError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from transcription_pipeline.utils.retry import RetryExecutor

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/webhooks/rev-ai"
SUMMARY_PATH = "/jobs/{job_id}/summary"
HEALTH_PATH = "/healthz"


def _setup_logging(level: str = "INFO") -> None:
    """Configure root logger with structured JSON output."""
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    root.addHandler(handler)


@dataclass
class Services:
    """Collaborators built from Settings for one process."""

    pipeline: JobPipeline
    reconciler: WebhookReconciler
    closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)
    background: set[asyncio.Task] = field(default_factory=set)

    def schedule_analysis(self, job: Job) -> None:
        task = asyncio.create_task(self.pipeline.analyze_job(job.id))
        self.background.add(task)
        task.add_done_callback(self._analysis_done)

    def _analysis_done(self, task: asyncio.Task) -> None:
        self.background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background analysis failed: %s", exc, exc_info=exc)

    async def aclose(self) -> None:
        for task in list(self.background):
            task.cancel()
        for close in self.closers:
            await close()


def _error_response(exc: JobError, action: str) -> JSONResponse:
    """Map a pipeline error to a JSON error response."""
    message = exc.args[0] if exc.args else str(exc)
    if isinstance(exc, ValidationError):
        return JSONResponse({"error": message}, status_code=400)
    if isinstance(exc, NotFoundError):
        logger.warning("%s for unknown job: %s", action, message)
        return JSONResponse({"error": message}, status_code=404)
    logger.error("%s failed: %s", action, message, exc_info=exc)
    return JSONResponse({"error": message}, status_code=500)


def create_app(services: Services) -> FastAPI:
    """Build the FastAPI app routing requests to ``services``."""
    app = FastAPI(title="transcription-pipeline", version="0.1.0")

    @app.get(HEALTH_PATH, response_class=PlainTextResponse)
    async def healthz() -> str:
        return "ok"

    @app.post(WEBHOOK_PATH)
    async def rev_ai_webhook(
        request: Request, owner: str | None = Query(default=None)
    ) -> JSONResponse:
        body = await request.body()
        try:
            payload = json.loads(body or b"null")
        except ValueError:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        try:
            result = await services.reconciler.handle_payload(payload, owner_id=owner)
        except JobError as exc:
            return _error_response(exc, "Webhook")

        return JSONResponse(
            {
                "success": True,
                "job_id": result.job.id,
                "status": str(result.job.status),
                "outcome": result.outcome,
                "matched_by": result.matched_by,
            }
        )

    @app.post(SUMMARY_PATH)
    async def summarize(job_id: str) -> JSONResponse:
        try:
            job = await services.pipeline.summarize_job(job_id)
        except JobError as exc:
            return _error_response(exc, "Summary")

        return JSONResponse(
            {
                "success": True,
                "job_id": job.id,
                "summary_status": str(job.summary_status),
                "summary": job.summary_text,
                "error": job.error if job.summary_status is AnalysisStatus.ERROR else None,
            }
        )

    return app


def build_services(settings: Settings) -> Services:
    """Construct store, provider, engine, pipeline, and reconciler.

    Raises:
        ConfigurationError: If a required credential is missing.
    """
    retry = RetryExecutor.persistence(
        max_attempts=settings.retry_max_attempts,
        initial_delay=settings.retry_initial_delay,
        backoff_factor=settings.retry_backoff_factor,
    )
    request_retry = RetryExecutor(
        max_attempts=settings.retry_max_attempts,
        initial_delay=settings.retry_initial_delay,
        backoff_factor=settings.retry_backoff_factor,
        retryable_exceptions=(UpstreamError,),
    )
    store = SupabaseJobStore(
        url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        table=settings.supabase_table,
    )
    provider = get_transcription_provider(
        settings.transcription_provider,
        api_key=settings.rev_ai_api_key,
        base_url=settings.rev_ai_base_url,
    )
    engine = OpenAIAnalysisEngine(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        fallback_model=settings.openai_fallback_model,
        summary_max_tokens=settings.openai_summary_max_tokens,
    )
    analyzer = ChunkedAnalyzer(
        engine,
        chunk_size=settings.analysis_chunk_size,
        request_timeout=settings.analysis_timeout_seconds,
        max_concurrency=settings.analysis_max_concurrency,
        retry=request_retry,
    )
    summarizer = TranscriptSummarizer(
        engine,
        chunk_size=settings.analysis_chunk_size,
        request_timeout=settings.analysis_timeout_seconds,
        max_concurrency=settings.analysis_max_concurrency,
        retry=request_retry,
    )
    pipeline = JobPipeline(
        store,
        analyzer,
        submitter=JobSubmitter(
            provider, store, callback_url=settings.webhook_callback_url, retry=retry
        ),
        poller=StatusPoller(
            provider,
            store,
            max_attempts=settings.poll_max_attempts,
            delay_seconds=settings.poll_delay_seconds,
            retry=retry,
        ),
        retry=retry,
        summarizer=summarizer,
    )

    services = Services(
        pipeline=pipeline,
        reconciler=WebhookReconciler(provider, store, retry=retry),
        closers=[store.close, provider.close, engine.close],
    )

    async def _on_completed(job: Job) -> None:
        services.schedule_analysis(job)

    services.reconciler.on_completed = _on_completed
    return services


async def _run(settings: Settings) -> None:
    """Serve HTTP until uvicorn receives SIGTERM/SIGINT, then close clients."""
    services = build_services(settings)
    config = uvicorn.Config(
        create_app(services),
        host=settings.host,
        port=settings.port,
        log_config=None,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    logger.info("Webhook server listening on %s:%d", settings.host, settings.port)
    try:
        await server.serve()
    finally:
        logger.info("Server stopped, closing clients")
        await services.aclose()


def main() -> None:
    """Load settings and start the webhook server."""
    settings = Settings.from_env()
    _setup_logging(settings.log_level)
    logger.info("Transcription pipeline starting")
    asyncio.run(_run(settings))


if __name__ == "__main__":
    main()
