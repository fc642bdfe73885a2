"""MP3 encoder adapter.

The pipeline only sees the narrow `Encoder` / `EncoderSession` contract:
open a configured session, feed it equal-length left/right chunks, flush it
once at end-of-stream, close it. `FFmpegMp3Encoder` backs the contract with one
ffmpeg (libmp3lame) process per session; tests substitute a recording fake.
"""

import logging
import queue
import shutil
import subprocess
import threading
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from wavbatch.config.models import EncoderConfig
from wavbatch.domain.errors import EncoderInitError, EncodingFailure

# MPEG-1 Layer III tables (the only layer libmp3lame writes at 32-48 kHz)
MPEG1_SAMPLE_RATES = (32000, 44100, 48000)
MPEG1_BITRATES_KBPS = (32, 40, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320)

READ_CHUNK_BYTES = 64 * 1024


def negotiate(config: EncoderConfig) -> None:
    """Checks the parameters against what the codec accepts.

    Raises EncoderInitError on the first rejected parameter.
    """
    if config.sample_rate not in MPEG1_SAMPLE_RATES:
        raise EncoderInitError(f"Unsupported sample rate: {config.sample_rate} Hz")
    if config.bitrate_kbps not in MPEG1_BITRATES_KBPS:
        raise EncoderInitError(f"Unsupported bitrate: {config.bitrate_kbps} kbps")
    if config.channels not in (1, 2):
        raise EncoderInitError(f"Unsupported channel count: {config.channels}")
    if (config.mode == "mono") != (config.channels == 1):
        raise EncoderInitError(f"Mode {config.mode} does not fit {config.channels} channel(s)")
    if not 0 <= config.quality <= 9:
        raise EncoderInitError(f"Unsupported quality: {config.quality}")


def interleave(left: np.ndarray, right: np.ndarray) -> bytes:
    """Packs two channel buffers into little-endian s16 interleaved PCM."""
    if len(left) != len(right):
        raise ValueError(f"Channel length mismatch: left={len(left)} right={len(right)}")
    frames = np.empty(len(left) * 2, dtype="<i2")
    frames[0::2] = left
    frames[1::2] = right
    return frames.tobytes()


class EncoderSession(ABC):
    """One configured codec instance, owned by a single worker."""

    @abstractmethod
    def encode_chunk(self, left: np.ndarray, right: np.ndarray) -> bytes:
        """Encodes equal-length channel buffers; returns zero or more bytes."""

    @abstractmethod
    def flush(self) -> bytes:
        """Drains buffered output. Called once, after the last chunk."""

    @abstractmethod
    def close(self) -> None:
        """Releases codec resources. Safe to call more than once."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class Encoder(ABC):
    @abstractmethod
    def open(self, config: EncoderConfig) -> EncoderSession:
        """Returns a configured session or raises EncoderInitError."""


class FFmpegMp3Session(EncoderSession):
    """Streams PCM into an ffmpeg process and collects the MP3 it emits.

    Daemon threads drain ffmpeg's stdout into a queue and its stderr into a
    buffer, so writes to stdin never deadlock against a full output pipe.
    """

    def __init__(self, process: subprocess.Popen, label: str = "ffmpeg"):
        self.process = process
        self.label = label
        self.logger = logging.getLogger(__name__)
        self._output: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._eof = False
        self._flushed = False
        self._closed = False
        self._stderr_parts: List[bytes] = []
        self._reader = threading.Thread(target=self._read_output, name=f"{label}-reader", daemon=True)
        self._reader.start()
        self._stderr_reader = threading.Thread(target=self._read_errors, name=f"{label}-stderr", daemon=True)
        self._stderr_reader.start()

    def _read_output(self):
        stdout = self.process.stdout
        try:
            while stdout is not None:
                data = stdout.read1(READ_CHUNK_BYTES)
                if not data:
                    break
                self._output.put(data)
        except (OSError, ValueError) as e:
            self.logger.debug(f"{self.label}: output reader stopped: {e}")
        finally:
            self._output.put(None)

    def _drain(self, block: bool = False) -> bytes:
        parts: List[bytes] = []
        while not self._eof:
            try:
                data = self._output.get(block=block)
            except queue.Empty:
                break
            if data is None:
                self._eof = True
                break
            parts.append(data)
        return b"".join(parts)

    def _read_errors(self):
        stderr = self.process.stderr
        if stderr is None:
            return
        try:
            data = stderr.read()
        except (OSError, ValueError) as e:
            self.logger.debug(f"{self.label}: stderr reader stopped: {e}")
            return
        if data:
            self._stderr_parts.append(data)

    def _stderr_text(self) -> str:
        self._stderr_reader.join(timeout=5.0)
        return b"".join(self._stderr_parts).decode("utf-8", errors="replace").strip()

    def encode_chunk(self, left: np.ndarray, right: np.ndarray) -> bytes:
        if self._flushed or self._closed:
            raise EncodingFailure(f"{self.label}: session already finished")
        pcm = interleave(left, right)
        try:
            self.process.stdin.write(pcm)
        except (OSError, ValueError) as e:
            returncode = self.process.poll()
            raise EncodingFailure(f"{self.label}: encoder stopped accepting input (exit={returncode}): {e}") from e
        return self._drain()

    def flush(self) -> bytes:
        if self._flushed or self._closed:
            raise EncodingFailure(f"{self.label}: flush called twice")
        self._flushed = True
        try:
            self.process.stdin.close()
        except (BrokenPipeError, OSError) as e:
            self.logger.debug(f"{self.label}: stdin close failed: {e}")
        data = self._drain(block=True)
        returncode = self.process.wait()
        if returncode != 0:
            detail = self._stderr_text()
            raise EncodingFailure(f"{self.label}: encoder exited with code {returncode}: {detail}")
        return data

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.process.poll() is None:
            self.process.kill()
            self.process.wait()
        for stream in (self.process.stdin, self.process.stdout, self.process.stderr):
            if stream is None:
                continue
            try:
                stream.close()
            except OSError:
                pass


class FFmpegMp3Encoder(Encoder):
    """Wrapper around ffmpeg/libmp3lame for PCM to MP3 encoding."""

    def __init__(self, binary: str = "ffmpeg"):
        self.binary = binary
        self.logger = logging.getLogger(__name__)

    def _build_command(self, config: EncoderConfig) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        cmd = [
            self.binary,
            "-hide_banner",
            "-loglevel", "error",
            # Raw PCM on stdin: no header, layout given explicitly
            "-f", "s16le",
            "-ar", str(config.sample_rate),
            "-ac", str(config.channels),
            "-i", "pipe:0",
            "-vn",
            "-c:a", "libmp3lame",
            "-b:a", f"{config.bitrate_kbps}k",
            "-compression_level", str(config.quality),
        ]
        if config.channels == 2:
            cmd.extend(["-joint_stereo", "1" if config.mode == "joint_stereo" else "0"])
        cmd.extend(["-f", "mp3", "pipe:1"])
        return cmd

    def open(self, config: EncoderConfig) -> EncoderSession:
        negotiate(config)
        if shutil.which(self.binary) is None:
            raise EncoderInitError(f"Encoder binary not found: {self.binary}")

        cmd = self._build_command(config)
        self.logger.debug(f"ENCODER_CMD: {' '.join(cmd)}")
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise EncoderInitError(f"Cannot start {self.binary}: {e}") from e
        return FFmpegMp3Session(process, label=self.binary)
