# services/build_pipeline.py
"""
Worker-side build pipeline for a single correlation key.

    RECEIVED -> DOWNLOADED -> EXTRACTED -> PROJECT_LOCATED -> BUILT
             -> ARTIFACT_LOCATED -> PUBLISHED -> CLEANED

A job can stop early in PAYLOAD_MISSING, EXTRACTION_FAILED,
NO_PROJECT_FOUND, BUILD_FAILED, NO_ARTIFACT_FOUND or PUBLISH_FAILED; it
still ends in CLEANED. Only PUBLISHED jobs leave a result behind, so a
caller cannot tell an abandoned job from a slow one until its poll times
out.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from core.config import Settings
from core.errors import (
    BuildFailedError,
    ExtractionError,
    NoArtifactFoundError,
    NoProjectFoundError,
    StorageError,
    TransportError,
)
from core.logger import logger
from integrations.object_store import ObjectStore
from schemas.job_models import JobState
from services.result_sink import ResultSink
from services.toolchain import BuildOutcome, Toolchain
from services.workspace import (
    JobContext,
    extract_archive,
    find_files,
    job_context,
    scratch_root,
)

_DIAGNOSTICS_LOG_LIMIT = 20_000


@dataclass
class JobOutcome:
    correlation_key: str
    state: JobState
    manifest: Optional[str] = None
    artifact_size: int = 0
    build: Optional[BuildOutcome] = None
    history: List[JobState] = field(default_factory=list)

    @property
    def published(self) -> bool:
        return self.state == JobState.PUBLISHED


class BuildPipeline:
    def __init__(
        self,
        config: Settings,
        object_store: ObjectStore,
        result_sink: ResultSink,
        toolchain: Toolchain,
    ):
        self.object_store = object_store
        self.result_sink = result_sink
        self.toolchain = toolchain
        self.scratch_root = scratch_root(config.SCRATCH_ROOT)
        self.manifest_extension = config.MANIFEST_EXTENSION
        self.artifact_pattern = config.ARTIFACT_PATTERN
        self.fail_on_build_error = config.FAIL_ON_BUILD_ERROR

    def run(self, correlation_key: str) -> JobOutcome:
        """Process one job. Never raises for an expected per-job failure."""
        logger.info(f"Starting build job {correlation_key}")
        outcome = JobOutcome(correlation_key=correlation_key, state=JobState.RECEIVED)

        with job_context(correlation_key, self.scratch_root, self.object_store) as ctx:
            try:
                self._execute(ctx, outcome)
            except StorageError as e:
                if ctx.state == JobState.RECEIVED:
                    logger.error(f"[{correlation_key}] payload unavailable: {e}")
                    ctx.advance(JobState.PAYLOAD_MISSING)
                else:
                    logger.error(f"[{correlation_key}] storage failure in {ctx.state.value}: {e}")
                    ctx.advance(JobState.PUBLISH_FAILED)
            except TransportError as e:
                logger.error(f"[{correlation_key}] result transport failed: {e}")
                ctx.advance(JobState.PUBLISH_FAILED)
            except ExtractionError as e:
                logger.error(f"[{correlation_key}] {e}")
                ctx.advance(JobState.EXTRACTION_FAILED)
            except NoProjectFoundError as e:
                logger.warning(f"[{correlation_key}] {e.message}")
                ctx.advance(JobState.NO_PROJECT_FOUND)
            except BuildFailedError as e:
                logger.warning(f"[{correlation_key}] {e.message}")
                ctx.advance(JobState.BUILD_FAILED)
            except NoArtifactFoundError as e:
                logger.warning(f"[{correlation_key}] {e.message}")
                ctx.advance(JobState.NO_ARTIFACT_FOUND)
            outcome.state = ctx.state

        outcome.history = ctx.history + [ctx.state]
        logger.info(f"Finished build job {correlation_key}: {outcome.state.value}")
        return outcome

    def _execute(self, ctx: JobContext, outcome: JobOutcome) -> None:
        key = ctx.correlation_key

        self.object_store.download_file(key, str(ctx.archive_path))
        ctx.advance(JobState.DOWNLOADED)
        logger.info(f"Downloaded file to '{ctx.archive_path}'")
        try:
            ctx.release_payload()
        except StorageError as e:
            logger.warning(f"[{key}] payload delete failed, retrying at cleanup: {e}")

        extract_archive(ctx.archive_path, ctx.extract_dir)
        ctx.advance(JobState.EXTRACTED)

        ctx.manifest_path = self._locate_manifest(ctx)
        outcome.manifest = ctx.manifest_path.relative_to(ctx.extract_dir).as_posix()
        ctx.advance(JobState.PROJECT_LOCATED)

        build = self.toolchain.build(ctx.manifest_path)
        outcome.build = build
        logger.info(f"[{key}] build exited with {build.returncode}")
        if build.diagnostics:
            logger.debug(f"[{key}] build output: {build.diagnostics[-_DIAGNOSTICS_LOG_LIMIT:]}")
        if not build.succeeded:
            if self.fail_on_build_error:
                raise BuildFailedError(key, build.returncode)
            logger.warning(f"[{key}] build reported failure, checking for artifacts anyway")
        ctx.advance(JobState.BUILT)

        ctx.artifact_path = self._locate_artifact(ctx)
        ctx.advance(JobState.ARTIFACT_LOCATED)

        artifact = ctx.artifact_path.read_bytes()
        outcome.artifact_size = len(artifact)
        self.result_sink.publish(key, artifact)
        ctx.advance(JobState.PUBLISHED)

    def _locate_manifest(self, ctx: JobContext) -> Path:
        manifests = find_files(ctx.extract_dir, f"*{self.manifest_extension}")
        logger.info(f"[{ctx.correlation_key}] found {len(manifests)} project files")
        if not manifests:
            raise NoProjectFoundError(ctx.correlation_key, self.manifest_extension)
        if len(manifests) > 1:
            logger.warning(
                f"[{ctx.correlation_key}] multiple project files, using first in path order: "
                f"{[p.relative_to(ctx.extract_dir).as_posix() for p in manifests]}"
            )
        return manifests[0]

    def _locate_artifact(self, ctx: JobContext) -> Path:
        artifacts = find_files(ctx.extract_dir, self.artifact_pattern)
        if not artifacts:
            raise NoArtifactFoundError(ctx.correlation_key, self.artifact_pattern)
        if len(artifacts) > 1:
            logger.warning(
                f"[{ctx.correlation_key}] {len(artifacts)} artifacts match {self.artifact_pattern}, "
                f"using {artifacts[0].relative_to(ctx.extract_dir).as_posix()}"
            )
        return artifacts[0]

