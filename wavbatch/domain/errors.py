"""Error kinds raised by the transcoding pipeline.

Only ``DirectoryUnavailable`` is fatal to a run. Every other error is raised
inside a worker, reported for that job, and contained there.
"""

from pathlib import Path
from typing import Optional, Union


class TranscodeError(Exception):
    """Base class for all wavbatch errors."""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class DirectoryUnavailable(TranscodeError):
    """The source directory cannot be opened for listing."""


class SpawnFailure(TranscodeError):
    """A worker thread could not be started for a job."""


class SourceOpenError(TranscodeError):
    """The input file cannot be opened for reading."""


class DestinationOpenError(TranscodeError):
    """The output file cannot be created or opened for writing."""


class EncoderInitError(TranscodeError):
    """The codec rejected the requested parameters or could not be started."""


class EncodingFailure(TranscodeError):
    """The codec reported an error while encoding or flushing."""


class StreamIOError(TranscodeError):
    """Reading the input or writing the output failed mid-stream."""
