from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Sequence

from warf.campaign.errors import CampaignError, SpawnError

logger = logging.getLogger(__name__)


@dataclass
class Invocation:
    program: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    cwd: Path | None = None
    target: str | None = None

    @property
    def command(self) -> list[str]:
        return [self.program, *self.args]

    def describe(self) -> str:
        env = " ".join(f"{k}={shlex.quote(v)}" for k, v in self.env.items())
        cmd = shlex.join(self.command)
        return f"{env} {cmd}" if env else cmd


class Outcome(Enum):
    SUCCESS = "success"
    SOFT_FAILURE = "soft_failure"
    HARD_FAILURE = "hard_failure"


@dataclass
class RunOutcome:
    kind: Outcome
    returncode: int | None = None
    error: CampaignError | None = None
    command: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.kind is Outcome.SUCCESS

    @classmethod
    def from_returncode(cls, returncode: int, command: list[str] | None = None) -> RunOutcome:
        kind = Outcome.SUCCESS if returncode == 0 else Outcome.SOFT_FAILURE
        return cls(kind, returncode, command=list(command or []))

    @classmethod
    def hard_failure(cls, error: CampaignError) -> RunOutcome:
        return cls(Outcome.HARD_FAILURE, error=error)


class ProcessRunner:
    """Run one subprocess at a time, in the foreground.

    Output is not captured: the child inherits stdout and stderr so the
    engine's own progress display stays visible.
    """

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        env_overrides: Mapping[str, str] | None = None,
        working_dir: Path | None = None,
    ) -> int:
        cmd = [command, *args]
        env = None
        if env_overrides:
            logger.debug("Env overrides: %s", dict(env_overrides))
            env = {**os.environ, **env_overrides}

        logger.debug(f"Running command (cwd={working_dir}): {' '.join(cmd)}")
        try:
            process = subprocess.Popen(cmd, cwd=working_dir, env=env)  # noqa: S603
        except OSError as e:
            raise SpawnError(cmd) from e

        returncode = process.wait()
        logger.debug(f"Command {' '.join(cmd)} exited with {returncode}")
        return returncode

    def execute(self, invocation: Invocation) -> RunOutcome:
        """Run an invocation and classify how it ended."""
        try:
            returncode = self.run(invocation.program, invocation.args, invocation.env, invocation.cwd)
        except CampaignError as e:
            return RunOutcome.hard_failure(e)
        return RunOutcome.from_returncode(returncode, invocation.command)
