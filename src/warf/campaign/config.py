from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from warf.campaign.backends import BACKENDS, FuzzerKind
from warf.campaign.errors import ConfigurationError
from warf.campaign.layout import WorkspaceLayout
from warf.campaign.workspace import DEFAULT_SKIP_EXISTING

DEFAULT_TIMEOUT = 10


def resolve_root(root_dir: Path | str | None) -> Path:
    if root_dir:
        return Path(root_dir)
    try:
        return Path.cwd()
    except OSError as e:
        raise ConfigurationError("error getting current directory") from e


@dataclass(frozen=True)
class CampaignConfig:
    """Everything one invocation needs, resolved once at entry."""

    root: Path
    fuzzer: FuzzerKind = FuzzerKind.HONGGFUZZ
    name_filter: str | None = None
    timeout: int | None = None
    infinite: bool = False
    cargo_update: bool = False
    extra_args: tuple[str, ...] = ()
    skip_existing: tuple[str, ...] = DEFAULT_SKIP_EXISTING

    @property
    def layout(self) -> WorkspaceLayout:
        return WorkspaceLayout(self.root)

    @classmethod
    def create(
        cls,
        root_dir: Path | str | None,
        fuzzer: FuzzerKind | str = FuzzerKind.HONGGFUZZ,
        environ: Mapping[str, str] | None = None,
        **options,
    ) -> CampaignConfig:
        """Build a config, reading the backend's extra runtime arguments from `environ`."""
        kind = FuzzerKind.parse(fuzzer)
        environ = environ or {}
        raw_args = environ.get(BACKENDS[kind].run_args_env, "")
        try:
            extra_args = tuple(shlex.split(raw_args))
        except ValueError as e:
            raise ConfigurationError(f"unable to parse {BACKENDS[kind].run_args_env}={raw_args!r}") from e
        return cls(root=resolve_root(root_dir), fuzzer=kind, extra_args=extra_args, **options)
