# services/workspace.py
"""
Per-job scratch space and owned resources.

A JobContext is opened for every received correlation key. It owns:
- a scratch directory <scratch_root>/<key>-<random>/ (archive + extracted
  tree), fresh for every run so a redelivered key never shares it
- the payload object in the bucket

Leaving the `job_context` block releases both, whatever state the job
ended in. Release failures are logged and swallowed.
"""
import shutil
import tempfile
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional

from core.errors import BuildDispatchError, ExtractionError
from core.logger import logger
from integrations.object_store import ObjectStore
from schemas.job_models import JobState


@dataclass
class JobContext:
    correlation_key: str
    root: Path
    object_store: ObjectStore
    state: JobState = JobState.RECEIVED
    payload_deleted: bool = False
    manifest_path: Optional[Path] = None
    artifact_path: Optional[Path] = None
    history: List[JobState] = field(default_factory=list)

    @property
    def archive_path(self) -> Path:
        return self.root / "archive.zip"

    @property
    def extract_dir(self) -> Path:
        return self.root / "extracted"

    def advance(self, state: JobState) -> None:
        self.history.append(self.state)
        self.state = state
        logger.info(f"[{self.correlation_key}] -> {state.value}")

    def release_payload(self) -> None:
        """Delete the source payload. A no-op once a deletion has succeeded."""
        if self.payload_deleted:
            return
        self.object_store.delete(self.correlation_key)
        self.payload_deleted = True
        logger.info(f"[{self.correlation_key}] deleted payload object")


def scratch_root(configured: Optional[str]) -> Path:
    return Path(configured) if configured else Path(tempfile.gettempdir()) / "build-dispatch"


@contextmanager
def job_context(correlation_key: str, root_dir: Path, object_store: ObjectStore) -> Iterator[JobContext]:
    root_dir.mkdir(parents=True, exist_ok=True)
    root = Path(tempfile.mkdtemp(prefix=f"{correlation_key}-", dir=root_dir))
    ctx = JobContext(correlation_key=correlation_key, root=root, object_store=object_store)
    try:
        yield ctx
    finally:
        try:
            ctx.release_payload()
        except BuildDispatchError as e:
            logger.error(f"[{correlation_key}] payload cleanup failed: {e}")
        try:
            shutil.rmtree(root)
            logger.info(f"[{correlation_key}] deleted directory {root}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"[{correlation_key}] scratch cleanup failed for {root}: {e}")
        ctx.advance(JobState.CLEANED)


def extract_archive(archive_path: Path, target_dir: Path) -> List[Path]:
    """Extract a zip archive, refusing members that resolve outside target_dir."""
    target_dir.mkdir(parents=True, exist_ok=True)
    base = target_dir.resolve()
    try:
        with zipfile.ZipFile(archive_path) as archive:
            for member in archive.namelist():
                destination = (base / member).resolve()
                if destination != base and base not in destination.parents:
                    raise ExtractionError(f"Archive member escapes extraction directory: {member}")
            archive.extractall(base)
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        raise ExtractionError(f"Not a readable zip archive: {e}") from e
    except OSError as e:
        raise ExtractionError(f"Extraction failed: {e}") from e

    files = sorted(p for p in base.rglob("*") if p.is_file())
    for path in files:
        logger.debug(str(path))
    return files


def find_files(root: Path, pattern: str) -> List[Path]:
    """
    Recursive glob, ordered by the POSIX path relative to root. The first
    entry is the deterministic pick when several files match.
    """
    matches = [p for p in root.rglob(pattern) if p.is_file()]
    return sorted(matches, key=lambda p: p.relative_to(root).as_posix())
