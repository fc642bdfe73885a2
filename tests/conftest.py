import pytest
import shutil
import threading
import numpy as np
import yaml
from pathlib import Path
from wavbatch.config.models import AppConfig
from wavbatch.domain.errors import EncoderInitError, EncodingFailure
from wavbatch.infrastructure.encoder import Encoder, EncoderSession
from wavbatch.infrastructure.event_bus import EventBus

# ============================================================================
# Fake encoder (records every call)
# ============================================================================

class RecordingSession(EncoderSession):
    """Session that returns marker bytes instead of MP3 frames.

    encode_chunk returns b"C" * frames, flush returns b"F".
    """

    def __init__(self, encoder: "RecordingEncoder"):
        self.encoder = encoder
        self.chunks = 0
        self.close_count = 0
        self.released = False

    def _record(self, *call):
        with self.encoder.lock:
            self.encoder.calls.append(call)

    def encode_chunk(self, left, right):
        assert len(left) == len(right)
        self.chunks += 1
        # Views over the scratch buffer are reused, keep copies
        self._record("encode", np.array(left, copy=True), np.array(right, copy=True))
        if self.encoder.fail_on_chunk == self.chunks:
            raise EncodingFailure("codec returned -1")
        return b"C" * len(left)

    def flush(self):
        self._record("flush")
        if self.encoder.fail_on_flush:
            raise EncodingFailure("flush returned -1")
        return b"F"

    def close(self):
        self.close_count += 1
        if self.released:
            return
        self.released = True
        self._record("close")


class RecordingEncoder(Encoder):
    def __init__(self, fail_open=False, fail_on_chunk=None, fail_on_flush=False):
        self.fail_open = fail_open
        self.fail_on_chunk = fail_on_chunk
        self.fail_on_flush = fail_on_flush
        self.lock = threading.Lock()
        self.calls = []
        self.sessions = []

    def open(self, config):
        with self.lock:
            self.calls.append(("open", config))
        if self.fail_open:
            raise EncoderInitError("parameter negotiation rejected")
        session = RecordingSession(self)
        self.sessions.append(session)
        return session

    def call_names(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def recording_encoder():
    return RecordingEncoder()

@pytest.fixture
def encoder_factory():
    """Returns the RecordingEncoder class for tests that need failure modes."""
    return RecordingEncoder


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Returns the default AppConfig with a short barrier poll interval."""
    return AppConfig(general={"poll_interval_s": 0.05})

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "wavbatch.yaml"

    content = {
        'general': {
            'source_extension': 'wav',
            'target_extension': '.mp3',
            'chunk_frames': 4096,
            'max_workers': 2,
            'debug': False,
        },
        'encoder': {
            'bitrate_kbps': 192,
        },
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

@pytest.fixture
def collected_events(event_bus):
    """Subscribes to every job event type and returns the list they land in."""
    from wavbatch.domain.events import (
        JobStarted, JobCompleted, JobFailed, SpawnFailed, DiscoveryFinished, ProcessingFinished
    )
    events = []
    lock = threading.Lock()

    def _collect(event):
        with lock:
            events.append(event)

    for event_type in (JobStarted, JobCompleted, JobFailed, SpawnFailed, DiscoveryFinished, ProcessingFinished):
        event_bus.subscribe(event_type, _collect)
    return events

# ============================================================================
# PCM Fixtures
# ============================================================================

def make_pcm(frames: int, start: int = 0) -> bytes:
    """Interleaved s16le stereo: left = start, start+1, ...; right = -left."""
    left = (np.arange(frames, dtype=np.int32) + start) % 32768
    pcm = np.empty(frames * 2, dtype="<i2")
    pcm[0::2] = left
    pcm[1::2] = -left
    return pcm.tobytes()

@pytest.fixture
def pcm_factory():
    return make_pcm

@pytest.fixture
def wav_dir(tmp_path):
    """Creates an input directory and returns a writer for PCM files in it."""
    input_dir = tmp_path / "input"
    input_dir.mkdir()

    def _write(name: str, frames: int = 16) -> Path:
        path = input_dir / name
        path.write_bytes(make_pcm(frames))
        return path

    _write.directory = input_dir
    return _write

@pytest.fixture
def ffmpeg_available():
    if shutil.which("ffmpeg") is None:
        pytest.skip("ffmpeg not installed")

# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (integration tests with a real encoder)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
