from dataclasses import dataclass
from enum import Enum
from pathlib import Path

TARGETS_DIR = "targets"
TARGETS_SOURCE = Path("src") / "lib.rs"
WORKSPACE_DIR = "workspace"
CORPORA_DIR = "corpora"
SEED_CORPUS = "wasm"
DEBUG_DIR = "debug"


class DirectoryRole(Enum):
    DEFINITION = "definition"
    WORK = "work"
    SESSION = "session"


@dataclass(frozen=True)
class WorkspaceLayout:
    """Every path the orchestrator touches, derived from one root directory."""

    root: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "root", Path(self.root))

    @property
    def targets_dir(self) -> Path:
        return self.root / TARGETS_DIR

    @property
    def targets_source(self) -> Path:
        return self.targets_dir / TARGETS_SOURCE

    @property
    def workspace_dir(self) -> Path:
        return self.root / WORKSPACE_DIR

    @property
    def corpora_dir(self) -> Path:
        return self.workspace_dir / CORPORA_DIR

    @property
    def seed_dir(self) -> Path:
        return self.corpora_dir / SEED_CORPUS

    @property
    def debug_definition_dir(self) -> Path:
        return self.root / DEBUG_DIR

    @property
    def debug_work_dir(self) -> Path:
        return self.workspace_dir / DEBUG_DIR
