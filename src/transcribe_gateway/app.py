import asyncio
import logging
import uuid
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import ClientDisconnect
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .asr import AsrOptions, AsrService
from .errors import MissingInput, PayloadTooLarge, TranscriptionError
from .logger import setup_logger
from .pipeline import TranscriptionPipeline
from .settings import Settings, load_settings

AUDIO_FIELD = "audio"
LANG_FIELD = "lang"
TRANSCRIBE_PATH = "/transcribe"
# boundaries and part headers on top of the file bytes themselves
MULTIPART_OVERHEAD_BYTES = 64 * 1024

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    asr_service: AsrService
    pipeline: TranscriptionPipeline
    load_task: Optional["asyncio.Task[None]"] = None


class UploadLimitMiddleware:
    """Rejects oversized upload bodies before they are buffered.

    A declared Content-Length above the ceiling is answered with 413 without
    reading the body; undeclared (chunked) bodies are counted as they stream and
    abort with PayloadTooLarge once they pass it.
    """

    def __init__(self, app: ASGIApp, *, max_bytes: int, path: str = TRANSCRIBE_PATH) -> None:
        self.app = app
        self.max_bytes = max_bytes
        self.path = path

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("method") != "POST" or scope.get("path") != self.path:
            await self.app(scope, receive, send)
            return

        limit = self.max_bytes + MULTIPART_OVERHEAD_BYTES
        error = PayloadTooLarge(f"audio payload exceeds configured size limit of {self.max_bytes} bytes")

        headers = dict(scope.get("headers") or [])
        content_length = headers.get(b"content-length", b"").decode("latin-1").strip()
        if content_length.isdigit() and int(content_length) > limit:
            logger.warning(
                "transcribe.rejected_too_large content_length=%s",
                content_length,
                extra={"content_length": int(content_length)},
            )
            response = JSONResponse(error.to_payload(), status_code=error.status_code)
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > limit:
                    raise error
            return message

        await self.app(scope, limited_receive, send)


def create_app(
    settings: Optional[Settings] = None,
    *,
    asr_service: Optional[AsrService] = None,
    pipeline: Optional[TranscriptionPipeline] = None,
) -> FastAPI:
    settings = settings or load_settings()
    setup_logger(settings.server)

    if asr_service is None:
        asr_service = AsrService.from_settings(
            settings.asr,
            timeout_seconds=settings.pipeline.inference_timeout_seconds,
        )
    if pipeline is None:
        pipeline = TranscriptionPipeline.from_settings(settings.pipeline, asr_service=asr_service)

    context = AppContext(settings=settings, asr_service=asr_service, pipeline=pipeline)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        context.pipeline.upload_dir.mkdir(parents=True, exist_ok=True)
        # load in the background so /health answers while weights download
        context.load_task = asyncio.create_task(context.asr_service.load())
        logger.info(
            "server.started",
            extra={"model": context.asr_service.model_id, "upload_dir": str(context.pipeline.upload_dir)},
        )
        yield
        if context.load_task is not None and not context.load_task.done():
            context.load_task.cancel()
            with suppress(asyncio.CancelledError):
                await context.load_task
        logger.info("server.stopped")

    app = FastAPI(title="transcribe-gateway", lifespan=lifespan)
    app.state.context = context

    app.add_middleware(UploadLimitMiddleware, max_bytes=context.pipeline.max_upload_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.server.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TranscriptionError)
    async def _transcription_error(request: Request, exc: TranscriptionError) -> JSONResponse:
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("transcribe.unexpected_error")
        return JSONResponse({"error": str(exc) or "internal server error", "code": "InternalError"}, status_code=500)

    @app.get("/health")
    async def health(request: Request) -> Dict[str, Any]:
        ctx: AppContext = request.app.state.context
        return {
            "status": "ok",
            "model": ctx.asr_service.model_id,
            "state": ctx.asr_service.state.value,
        }

    @app.post(TRANSCRIBE_PATH)
    async def transcribe(request: Request) -> JSONResponse:
        ctx: AppContext = request.app.state.context
        request_id = uuid.uuid4().hex[:12]
        try:
            async with request.form(max_files=1) as form:
                upload = form.get(AUDIO_FIELD)
                if not isinstance(upload, UploadFile):
                    logger.info(
                        "transcribe.missing_file request_id=%s",
                        request_id,
                        extra={"request_id": request_id, "fields": list(form.keys())},
                    )
                    raise MissingInput("No audio file provided")
                lang = form.get(LANG_FIELD)
                options = AsrOptions(lang=lang.strip() if isinstance(lang, str) and lang.strip() else None)
                outcome = await ctx.pipeline.run(upload, request_id=request_id, options=options)
        except ClientDisconnect:
            logger.info("transcribe.client_disconnect request_id=%s", request_id, extra={"request_id": request_id})
            return JSONResponse({"error": "client disconnected"}, status_code=499)

        return JSONResponse({"text": outcome.text})

    return app


app = create_app()


def main() -> None:
    import uvicorn

    context: AppContext = app.state.context
    uvicorn.run(app, host=context.settings.server.host, port=context.settings.server.port)


if __name__ == "__main__":
    main()
