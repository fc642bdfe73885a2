from pathlib import Path
from pydantic import BaseModel, ConfigDict


class TranscodeJob(BaseModel):
    """One input file and the path its compressed stream is written to."""

    model_config = ConfigDict(frozen=True)

    input_path: Path
    output_path: Path


class RunSummary(BaseModel):
    jobs_found: int = 0
    spawned: int = 0
    succeeded: int = 0
    failed: int = 0
    spawn_failed: int = 0
