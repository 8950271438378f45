import asyncio

import pytest

from conftest import FakeUpload, make_wav_bytes
from transcribe_gateway.asr.providers.base import AsrProvider
from transcribe_gateway.asr.service import AsrService
from transcribe_gateway.asr.types import AsrResult, AsrSegment
from transcribe_gateway.errors import ConversionFailed, DecodeFailed, ModelNotReady, PayloadTooLarge
from transcribe_gateway.pipeline import TranscriptionPipeline


class SampleCountProvider(AsrProvider):
    """Echoes the number of samples so each request's transcript is distinguishable."""

    name = "count"

    async def transcribe(self, *, audio, options):
        await asyncio.sleep(0.01)
        return AsrResult(text=f"{len(audio)} samples")


async def _ready_service(provider=None) -> AsrService:
    service = AsrService(provider=provider or SampleCountProvider())
    await service.load()
    return service


@pytest.mark.asyncio
async def test_pipeline_success_removes_all_artifacts(settings, upload_dir, fake_transcoder):
    pipeline = TranscriptionPipeline.from_settings(settings.pipeline, asr_service=await _ready_service())

    outcome = await pipeline.run(FakeUpload(make_wav_bytes(seconds=0.5)))

    assert outcome.text == "8000 samples"
    assert set(outcome.timings_ms) == {"convert_ms", "infer_ms", "total_ms"}
    assert list(upload_dir.iterdir()) == []
    segment = fake_transcoder.segments[0]
    assert segment.source.parent == upload_dir
    assert segment.target.parent == upload_dir


@pytest.mark.asyncio
async def test_pipeline_conversion_failure_removes_all_artifacts(settings, upload_dir, fake_transcoder):
    fake_transcoder.decode_error = "Invalid data found when processing input"
    pipeline = TranscriptionPipeline.from_settings(settings.pipeline, asr_service=await _ready_service())

    with pytest.raises(ConversionFailed):
        await pipeline.run(FakeUpload(b"this is not an mp3", filename="song.mp3"))

    assert list(upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_pipeline_decode_failure_removes_all_artifacts(settings, upload_dir, fake_transcoder):
    # the fake transcoder copies its input, so a stereo upload reaches the decoder untouched
    pipeline = TranscriptionPipeline.from_settings(settings.pipeline, asr_service=await _ready_service())

    with pytest.raises(DecodeFailed):
        await pipeline.run(FakeUpload(make_wav_bytes(channels=2)))

    assert list(upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_pipeline_oversized_upload_removes_partial_file(settings, upload_dir, fake_transcoder):
    pipeline = TranscriptionPipeline.from_settings(settings.pipeline, asr_service=await _ready_service())
    too_big = b"\x00" * (settings.pipeline.max_upload_bytes + 1)

    with pytest.raises(PayloadTooLarge):
        await pipeline.run(FakeUpload(too_big))

    assert list(upload_dir.iterdir()) == []
    assert fake_transcoder.segments == []


@pytest.mark.asyncio
async def test_pipeline_rejects_when_model_not_ready(settings, upload_dir, fake_transcoder):
    service = AsrService(provider=SampleCountProvider(), ready_wait_seconds=0)
    pipeline = TranscriptionPipeline.from_settings(settings.pipeline, asr_service=service)

    with pytest.raises(ModelNotReady):
        await pipeline.run(FakeUpload(make_wav_bytes()))

    assert list(upload_dir.iterdir()) == []
    assert fake_transcoder.segments == []


@pytest.mark.asyncio
async def test_pipeline_cancellation_still_cleans_up(settings, upload_dir, fake_transcoder):
    fake_transcoder.hang = True
    pipeline = TranscriptionPipeline.from_settings(settings.pipeline, asr_service=await _ready_service())

    task = asyncio.create_task(pipeline.run(FakeUpload(make_wav_bytes())))
    while not fake_transcoder.segments:
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert list(upload_dir.iterdir()) == []

    # the abandoned conversion thread removes what it writes once released
    fake_transcoder.release.set()
    for _ in range(500):
        if fake_transcoder.exported and not list(upload_dir.iterdir()):
            break
        await asyncio.sleep(0.01)
    assert fake_transcoder.exported == 1
    assert list(upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_concurrent_requests_use_independent_artifacts(settings, upload_dir, fake_transcoder):
    pipeline = TranscriptionPipeline.from_settings(settings.pipeline, asr_service=await _ready_service())
    lengths = [0.1 * (i + 1) for i in range(10)]

    outcomes = await asyncio.gather(
        *(pipeline.run(FakeUpload(make_wav_bytes(seconds=s))) for s in lengths)
    )

    assert [o.text for o in outcomes] == [f"{int(16000 * s)} samples" for s in lengths]
    assert len({o.request_id for o in outcomes}) == 10
    assert len({p.source for p in fake_transcoder.segments}) == 10
    assert len({p.target for p in fake_transcoder.segments}) == 10
    assert list(upload_dir.iterdir()) == []


class ScoredProvider(AsrProvider):
    name = "scored"

    async def transcribe(self, *, audio, options):
        return AsrResult(
            text="two segments",
            segments=[AsrSegment(text="two", confidence=0.9), AsrSegment(text="segments", confidence=0.6)],
        )


@pytest.mark.asyncio
async def test_completion_log_carries_request_and_mean_confidence(settings, fake_transcoder, caplog):
    pipeline = TranscriptionPipeline.from_settings(
        settings.pipeline, asr_service=await _ready_service(ScoredProvider())
    )

    with caplog.at_level("INFO", logger="transcribe_gateway.pipeline"):
        outcome = await pipeline.run(FakeUpload(make_wav_bytes()), request_id="req-42")

    completed = [r for r in caplog.records if r.getMessage().startswith("transcribe.completed")]
    assert len(completed) == 1
    assert completed[0].mean_confidence == pytest.approx(0.75)
    assert "request_id=req-42" in completed[0].getMessage()
    assert "confidence=0.750" in completed[0].getMessage()
    assert outcome.text == "two segments"


@pytest.mark.asyncio
async def test_failure_log_names_request_and_code(settings, fake_transcoder, caplog):
    fake_transcoder.decode_error = "Invalid data found when processing input"
    pipeline = TranscriptionPipeline.from_settings(settings.pipeline, asr_service=await _ready_service())

    with caplog.at_level("WARNING", logger="transcribe_gateway.pipeline"):
        with pytest.raises(ConversionFailed):
            await pipeline.run(FakeUpload(b"not audio", filename="x.mp3"), request_id="req-7")

    message = next(r.getMessage() for r in caplog.records if r.getMessage().startswith("transcribe.failed"))
    assert "request_id=req-7" in message
    assert "code=ConversionFailed" in message
