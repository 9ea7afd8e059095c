from __future__ import annotations

from pathlib import Path
from typing import Iterator, Sequence


class CampaignError(Exception):
    """Base class for campaign orchestration errors."""

    pass


class ConfigurationError(CampaignError):
    """The invocation could not be turned into a usable configuration."""

    pass


class DiscoveryError(CampaignError):
    """The target source could not be read or declares no targets."""

    pass


class UnknownTargetError(CampaignError):
    def __init__(self, target: str, suggestion: str | None = None):
        self.target = target
        self.suggestion = suggestion
        message = f"Don't know target `{target}`."
        if suggestion is not None:
            message += f" Did you mean `{suggestion}`?"
        super().__init__(message)


class WorkspaceError(CampaignError):
    def __init__(self, message: str, path: Path | str):
        self.path = Path(path)
        super().__init__(f"{message} {self.path}")


class SpawnError(CampaignError):
    def __init__(self, command: Sequence[str], message: str | None = None):
        self.command = list(command)
        super().__init__(message or f"error starting `{' '.join(self.command)}`")


class CommandError(CampaignError):
    """A command ran to completion but exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int, message: str | None = None):
        self.command = list(command)
        self.returncode = returncode
        super().__init__(message or f"error running `{' '.join(self.command)}`: exited with {returncode}")


class FuzzerQuitError(CommandError):
    """The fuzzing engine ended its session with a non-zero status."""

    def __init__(self, backend: str, target: str, command: Sequence[str], returncode: int):
        self.backend = backend
        self.target = target
        super().__init__(command, returncode, f"[WARF] {backend}: fuzzer quit on {target} (exit status {returncode})")


def iter_causes(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


def error_chain(exc: BaseException) -> list[str]:
    """Render an exception and its causes, top-level message first."""
    lines = []
    for index, cause in enumerate(iter_causes(exc)):
        text = str(cause) or type(cause).__name__
        lines.append(text if index == 0 else f"caused by: {text}")
    return lines
