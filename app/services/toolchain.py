# services/toolchain.py
"""
External build toolchain, invoked as a subprocess.

The pipeline only depends on the Toolchain protocol, so another compiler
can be dropped in without touching the worker.
"""
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol

from core.logger import logger


@dataclass
class BuildOutcome:
    returncode: int
    diagnostics: str = ""
    timed_out: bool = False

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class Toolchain(Protocol):
    def build(self, manifest_path: Path) -> BuildOutcome: ...


class CommandToolchain:
    """
    Runs `<command> <manifest>` in the manifest's directory, with stderr
    folded into stdout.
    """

    def __init__(self, command: str = "dotnet build", timeout_seconds: Optional[float] = None):
        self.command: List[str] = shlex.split(command)
        if not self.command:
            raise ValueError("Build command is empty")
        self.timeout_seconds = timeout_seconds

    def build(self, manifest_path: Path) -> BuildOutcome:
        args = [*self.command, str(manifest_path)]
        logger.info(f"Running build: {shlex.join(args)}")
        try:
            proc = subprocess.run(
                args,
                cwd=str(manifest_path.parent),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                timeout=self.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            output = e.stdout or ""
            if isinstance(output, bytes):
                output = output.decode("utf-8", errors="replace")
            logger.warning(f"Build timed out after {self.timeout_seconds}s: {manifest_path}")
            return BuildOutcome(returncode=-1, diagnostics=output, timed_out=True)
        except FileNotFoundError:
            logger.error(f"Build command not found: {self.command[0]}")
            return BuildOutcome(returncode=127, diagnostics=f"command not found: {self.command[0]}")

        return BuildOutcome(returncode=proc.returncode, diagnostics=proc.stdout or "")
