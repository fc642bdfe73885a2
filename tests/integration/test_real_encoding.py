"""End-to-end runs against a real ffmpeg/libmp3lame binary."""
import numpy as np
import pytest
from wavbatch.config.models import AppConfig, EncoderConfig
from wavbatch.domain.events import JobFailed
from wavbatch.domain.models import TranscodeJob
from wavbatch.infrastructure.encoder import FFmpegMp3Encoder
from wavbatch.main import run_batch
from wavbatch.pipeline.dispatcher import JobDispatcher
from wavbatch.pipeline.transcoder import StreamingTranscoder


def _sine_pcm(seconds: float, rate: int = 44100) -> bytes:
    t = np.arange(int(seconds * rate)) / rate
    tone = (np.sin(2 * np.pi * 440 * t) * 12000).astype("<i2")
    pcm = np.empty(tone.size * 2, dtype="<i2")
    pcm[0::2] = tone
    pcm[1::2] = tone // 2
    return pcm.tobytes()


def _looks_like_mp3(data: bytes) -> bool:
    return data.startswith(b"ID3") or (len(data) > 1 and data[0] == 0xFF and data[1] & 0xE0 == 0xE0)


@pytest.mark.slow
@pytest.mark.integration
def test_real_session_encodes_and_flushes(ffmpeg_available):
    session = FFmpegMp3Encoder().open(EncoderConfig())
    pcm = np.frombuffer(_sine_pcm(0.5), dtype="<i2")

    with session:
        data = session.encode_chunk(pcm[0::2], pcm[1::2])
        data += session.flush()
        session.close()

    assert _looks_like_mp3(data)


@pytest.mark.slow
@pytest.mark.integration
def test_real_batch_encodes_directory(ffmpeg_available, tmp_path, event_bus, collected_events):
    for name in ("one.wav", "two.wav", "three.wav"):
        (tmp_path / name).write_bytes(_sine_pcm(1.0))
    (tmp_path / "skip.txt").write_text("not audio")

    summary = run_batch(tmp_path, AppConfig(), event_bus, FFmpegMp3Encoder())

    assert summary.jobs_found == 3
    assert summary.succeeded == 3
    for name in ("one.mp3", "two.mp3", "three.mp3"):
        data = (tmp_path / name).read_bytes()
        assert len(data) > 1000
        assert _looks_like_mp3(data)
    assert not any(isinstance(e, JobFailed) for e in collected_events)


@pytest.mark.slow
@pytest.mark.integration
def test_real_batch_isolates_missing_input(ffmpeg_available, tmp_path, event_bus, collected_events):
    (tmp_path / "good.wav").write_bytes(_sine_pcm(0.5))
    jobs = [
        TranscodeJob(input_path=tmp_path / "gone.wav", output_path=tmp_path / "gone.mp3"),
        TranscodeJob(input_path=tmp_path / "good.wav", output_path=tmp_path / "good.mp3"),
    ]
    transcoder = StreamingTranscoder(AppConfig(), FFmpegMp3Encoder(), event_bus)

    summary = JobDispatcher(transcoder.run, event_bus, poll_interval_s=0.05).run(jobs)

    assert summary.succeeded == 1
    assert summary.failed == 1
    assert _looks_like_mp3((tmp_path / "good.mp3").read_bytes())
    assert not (tmp_path / "gone.mp3").exists()
    failed = [e for e in collected_events if isinstance(e, JobFailed)]
    assert [e.path.name for e in failed] == ["gone.wav"]
