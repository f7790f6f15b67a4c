"""Thin, injectable wrapper around ``subprocess.run``."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        return self.stdout + self.stderr


class CommandRunner:
    """Runs one command and always returns a :class:`CommandResult`.

    A missing executable yields return code 127 and a timeout yields
    ``timed_out=True``; neither raises. Subclass or replace this object to
    run commands elsewhere (or not at all, in tests).
    """

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult:
        logger.debug("Running %s (cwd=%s, timeout=%s)", " ".join(args), cwd, timeout)
        full_env = {**os.environ, **env} if env else None
        try:
            proc = subprocess.run(
                list(args),
                cwd=str(cwd) if cwd else None,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=full_env,
            )
        except subprocess.TimeoutExpired as exc:
            logger.warning("Command timed out after %ss: %s", timeout, " ".join(args))
            return CommandResult(
                returncode=-1,
                stdout=_text(exc.stdout),
                stderr=_text(exc.stderr) or f"Timed out after {timeout}s",
                timed_out=True,
            )
        except (FileNotFoundError, PermissionError) as exc:
            return CommandResult(returncode=127, stderr=str(exc))
        return CommandResult(returncode=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or "")


def _text(value: Union[str, bytes, None]) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
