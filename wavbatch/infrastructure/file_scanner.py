import os
import logging
from pathlib import Path
from typing import Iterator, List, Union
from wavbatch.config.models import normalize_extension
from wavbatch.domain.errors import DirectoryUnavailable
from wavbatch.domain.models import TranscodeJob

logger = logging.getLogger(__name__)


def derive_output_path(input_path: Path, target_extension: str) -> Path:
    """Replaces only the final suffix: ``track.01.wav`` -> ``track.01.mp3``."""
    return input_path.with_suffix(target_extension)


class FileScanner:
    """Turns the files of one directory into transcode jobs.

    The scan is not recursive. The directory is listed once, when `scan` is
    called; files created afterwards are not picked up.
    """

    def __init__(self, source_extension: str = ".wav", target_extension: str = ".mp3"):
        self.source_extension = normalize_extension(source_extension)
        self.target_extension = normalize_extension(target_extension)

    def _list_directory(self, directory: Path) -> List[str]:
        try:
            with os.scandir(directory) as entries:
                return sorted(entry.name for entry in entries if entry.is_file())
        except OSError as e:
            raise DirectoryUnavailable(f"Cannot open directory {directory}: {e.strerror or e}", directory) from e

    def matches(self, file_name: str) -> bool:
        # Case-sensitive; "name" and ".wav" have no suffix and never match.
        return Path(file_name).suffix == self.source_extension

    def scan(self, directory: Union[str, Path]) -> Iterator[TranscodeJob]:
        """Lists the directory and returns an iterator of jobs.

        Raises DirectoryUnavailable immediately, before any job is produced.
        """
        directory = Path(directory)
        names = self._list_directory(directory)
        return self._iter_jobs(directory, names)

    def _iter_jobs(self, directory: Path, names: List[str]) -> Iterator[TranscodeJob]:
        for file_name in names:
            if not self.matches(file_name):
                logger.debug(f"SCAN_SKIP: {file_name}")
                continue
            input_path = directory / file_name
            yield TranscodeJob(
                input_path=input_path,
                output_path=derive_output_path(input_path, self.target_extension),
            )
