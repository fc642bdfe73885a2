"""Streaming PCM to MP3 transcoding of a single job.

The input is consumed as a raw stream of interleaved 16-bit stereo frames
(left, right, left, right, ...). Each iteration fills a scratch buffer with up
to `chunk_frames` frames, splits it into left/right views and hands them to the
encoder session; a read that yields no frames flushes the encoder and ends the
stream. No resampling or channel adaptation happens here; input that does not
match the encoder configuration is the codec's problem.
"""

import logging
import time
from typing import BinaryIO, Optional, Tuple

import numpy as np

from wavbatch.config.models import AppConfig
from wavbatch.domain.errors import (
    TranscodeError,
    SourceOpenError,
    DestinationOpenError,
    StreamIOError,
)
from wavbatch.domain.events import JobStarted, JobCompleted, JobFailed
from wavbatch.domain.models import TranscodeJob
from wavbatch.infrastructure.encoder import Encoder, EncoderSession
from wavbatch.infrastructure.event_bus import EventBus

SAMPLE_DTYPE = np.dtype("<i2")
CHANNELS = 2
FRAME_BYTES = SAMPLE_DTYPE.itemsize * CHANNELS


def split_channels(interleaved: np.ndarray, frames: int) -> Tuple[np.ndarray, np.ndarray]:
    """Returns (left, right) views over the first `frames` interleaved frames.

    Even-indexed samples are left, odd-indexed samples are right. The views
    share memory with `interleaved`.
    """
    end = frames * CHANNELS
    return interleaved[0:end:2], interleaved[1:end:2]


class StreamingTranscoder:
    """Runs one job end-to-end: open, read/split/encode/write, flush, close.

    Safe to share between workers: all per-job state (files, encoder session,
    scratch buffer) lives inside `run`.

    Args:
        config: AppConfig; `general.chunk_frames` sizes the scratch buffer and
            `encoder` is passed to `Encoder.open` for every job.
        encoder: Encoder adapter that opens one session per job.
        event_bus: EventBus receiving JobStarted/JobCompleted/JobFailed.
    """

    def __init__(self, config: AppConfig, encoder: Encoder, event_bus: EventBus):
        self.config = config
        self.encoder = encoder
        self.event_bus = event_bus
        self.chunk_frames = config.general.chunk_frames
        self.logger = logging.getLogger(__name__)

    def run(self, job: TranscodeJob) -> bool:
        """Transcodes one job. Returns True on success.

        Per-job errors are reported through the event bus and never raised.
        """
        start_time = time.monotonic()
        self.event_bus.publish(JobStarted(job=job))
        self.logger.info(f"JOB_START: {job.input_path} -> {job.output_path}")

        try:
            frames_total = self._transcode(job)
        except TranscodeError as e:
            path = e.path or job.input_path
            self.logger.error(f"JOB_FAILED: {job.input_path}: {type(e).__name__}: {e}")
            self.event_bus.publish(JobFailed(job=job, error_message=str(e), path=path))
            return False

        elapsed = time.monotonic() - start_time
        self.logger.info(f"JOB_DONE: {job.input_path} frames={frames_total} elapsed={elapsed:.2f}s")
        self.event_bus.publish(JobCompleted(job=job, duration_seconds=elapsed))
        return True

    def _transcode(self, job: TranscodeJob) -> int:
        try:
            source = open(job.input_path, "rb")
        except OSError as e:
            raise SourceOpenError(f"cannot open source: {e.strerror or e}", job.input_path) from e

        with source:
            try:
                destination = open(job.output_path, "wb")
            except OSError as e:
                raise DestinationOpenError(f"cannot open destination: {e.strerror or e}", job.output_path) from e

            with destination:
                with self.encoder.open(self.config.encoder) as session:
                    return self._pump(job, source, destination, session)

    def _pump(self, job: TranscodeJob, source: BinaryIO, destination: BinaryIO, session: EncoderSession) -> int:
        scratch = np.empty(self.chunk_frames * CHANNELS, dtype=SAMPLE_DTYPE)
        scratch_bytes = memoryview(scratch).cast("B")
        frames_total = 0

        while True:
            frames = self._read_frames(job, source, scratch_bytes)
            if frames == 0:
                self._write(job, destination, session.flush())
                return frames_total

            left, right = split_channels(scratch, frames)
            self._write(job, destination, session.encode_chunk(left, right))
            frames_total += frames
            self.logger.debug(f"CHUNK: {job.input_path.name} frames={frames}")

    def _read_frames(self, job: TranscodeJob, source: BinaryIO, buffer: memoryview) -> int:
        """Fills `buffer` until it is full or the input ends.

        Returns the number of whole frames read; a trailing partial frame at
        end of input is dropped.
        """
        filled = 0
        try:
            while filled < len(buffer):
                count: Optional[int] = source.readinto(buffer[filled:])
                if not count:
                    break
                filled += count
        except OSError as e:
            raise StreamIOError(f"read failed: {e.strerror or e}", job.input_path) from e
        return filled // FRAME_BYTES

    def _write(self, job: TranscodeJob, destination: BinaryIO, data: bytes):
        if not data:
            return
        try:
            destination.write(data)
        except OSError as e:
            raise StreamIOError(f"write failed: {e.strerror or e}", job.output_path) from e
