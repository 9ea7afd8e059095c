from __future__ import annotations

import logging
import shlex
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

from warf.campaign.errors import WorkspaceError
from warf.campaign.layout import DirectoryRole, WorkspaceLayout
from warf.campaign.runner import Invocation, ProcessRunner

if TYPE_CHECKING:
    from warf.campaign.workspace import WorkspaceMaterializer

logger = logging.getLogger(__name__)

CARGO = "cargo"


class FuzzerKind(str, Enum):
    AFL = "afl"
    HONGGFUZZ = "honggfuzz"
    LIBFUZZER = "libfuzzer"

    @classmethod
    def parse(cls, value: str | FuzzerKind) -> FuzzerKind:
        if isinstance(value, FuzzerKind):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            choices = ", ".join(kind.value for kind in cls)
            raise ValueError(f"unknown fuzzer `{value}` (expected one of {choices})") from None


class Backend(ABC):
    """One fuzzing engine: where its files live and how it is invoked."""

    kind: FuzzerKind
    display_name: str
    work_name: str
    run_args_env: str

    MANIFEST = "Cargo.toml"
    TEMPLATE = "template.rs"
    LIBRARY = Path("src") / "lib.rs"

    def __init__(self, layout: WorkspaceLayout):
        self.layout = layout

    def __repr__(self) -> str:
        return f"{type(self).__name__}(root={self.layout.root})"

    def directory_for(self, role: DirectoryRole) -> Path:
        if role is DirectoryRole.DEFINITION:
            return self.layout.root / f"fuzzer-{self.kind.value}"
        work_dir = self.layout.workspace_dir / self.work_name
        if role is DirectoryRole.WORK:
            return work_dir
        return work_dir / f"{self.work_name}_workspace"

    @property
    def definition_dir(self) -> Path:
        return self.directory_for(DirectoryRole.DEFINITION)

    @property
    def work_dir(self) -> Path:
        return self.directory_for(DirectoryRole.WORK)

    @property
    def session_dir(self) -> Path:
        return self.directory_for(DirectoryRole.SESSION)

    @property
    def harness_dir(self) -> Path:
        return self.work_dir / "src" / "bin"

    def harness_path(self, target: str) -> Path:
        return self.harness_dir / f"{target}.rs"

    def prepare(self, materializer: WorkspaceMaterializer, runner: ProcessRunner, targets: Sequence[str]) -> None:
        """Materialize the workspace and generate a harness for each of `targets`."""
        materializer.ensure_seed_dir()
        materializer.prepare_target_tree()
        materializer.prepare_backend_tree(self)
        for target in targets:
            materializer.instantiate_harness(self, target)

    @abstractmethod
    def build_invocations(self, targets: Sequence[str]) -> list[Invocation]:
        """Commands that compile `targets` without fuzzing them."""

    @abstractmethod
    def run_invocations(self, target: str, timeout: int | None, extra_args: Sequence[str]) -> list[Invocation]:
        """Commands that fuzz `target`, run in order; the last one is the engine session."""


class AflBackend(Backend):
    kind = FuzzerKind.AFL
    display_name = "Afl"
    work_name = "afl"
    run_args_env = "AFL_RUN_ARGS"

    def build_invocations(self, targets: Sequence[str]) -> list[Invocation]:
        return [
            Invocation(CARGO, ["afl", "build", "--bin", target], cwd=self.work_dir, target=target) for target in targets
        ]

    def _input_arg(self) -> str:
        # "-" asks afl-fuzz to resume the session found in the output directory
        queue_dir = self.session_dir / "queue"
        try:
            resume = queue_dir.is_dir() and any(queue_dir.iterdir())
        except OSError as e:
            raise WorkspaceError("unable to inspect afl session queue", queue_dir) from e
        if resume:
            return "-"
        return str(self.layout.seed_dir)

    def prepare(self, materializer: WorkspaceMaterializer, runner: ProcessRunner, targets: Sequence[str]) -> None:
        super().prepare(materializer, runner, targets)
        materializer.ensure_dir(self.session_dir)

    def run_invocations(self, target: str, timeout: int | None, extra_args: Sequence[str]) -> list[Invocation]:
        args = ["afl", "fuzz", "-i", self._input_arg(), "-o", str(self.session_dir)]
        if timeout is not None:
            args += ["-V", str(timeout)]
        args += [*extra_args, "--", f"./target/debug/{target}"]
        return [*self.build_invocations([target]), Invocation(CARGO, args, cwd=self.work_dir)]


class HonggfuzzBackend(Backend):
    kind = FuzzerKind.HONGGFUZZ
    display_name = "Honggfuzz"
    work_name = "hfuzz"
    run_args_env = "HFUZZ_RUN_ARGS"

    def build_invocations(self, targets: Sequence[str]) -> list[Invocation]:
        return [Invocation(CARGO, ["hfuzz", "build"], cwd=self.work_dir)]

    def run_invocations(self, target: str, timeout: int | None, extra_args: Sequence[str]) -> list[Invocation]:
        run_args = []
        if timeout is not None:
            run_args += ["--run_time", str(timeout)]
        run_args += list(extra_args)
        env = {
            "HFUZZ_RUN_ARGS": shlex.join(run_args),
            "HFUZZ_INPUT": str(self.layout.seed_dir),
        }
        return [Invocation(CARGO, ["hfuzz", "run", target], env=env, cwd=self.work_dir)]


class LibfuzzerBackend(Backend):
    kind = FuzzerKind.LIBFUZZER
    display_name = "Libfuzzer"
    work_name = "libfuzzer"
    run_args_env = "LIBFUZZER_RUN_ARGS"

    @property
    def fuzz_dir(self) -> Path:
        return self.work_dir / "fuzz"

    @property
    def harness_dir(self) -> Path:
        return self.fuzz_dir / "fuzz_targets"

    def register_invocation(self, target: str) -> Invocation:
        return Invocation(CARGO, ["fuzz", "add", target], cwd=self.fuzz_dir)

    def prepare(self, materializer: WorkspaceMaterializer, runner: ProcessRunner, targets: Sequence[str]) -> None:
        materializer.ensure_seed_dir()
        materializer.prepare_target_tree()
        materializer.prepare_backend_tree(self)
        materializer.prepare_fuzz_project(self)
        for target in targets:
            # cargo-fuzz adds the [[bin]] entry and a stub source that the harness then replaces
            invocation = self.register_invocation(target)
            returncode = runner.run(invocation.program, invocation.args, invocation.env, invocation.cwd)
            if returncode != 0:
                logger.warning(f"[WARF] {self.display_name}: `{invocation.describe()}` exited with {returncode}")
            materializer.instantiate_harness(self, target)

    def build_invocations(self, targets: Sequence[str]) -> list[Invocation]:
        return [Invocation(CARGO, ["fuzz", "build"], cwd=self.fuzz_dir)]

    def run_invocations(self, target: str, timeout: int | None, extra_args: Sequence[str]) -> list[Invocation]:
        args = ["fuzz", "run", target, str(self.layout.seed_dir)]
        engine_args = []
        if timeout is not None:
            engine_args.append(f"-max_total_time={timeout}")
        engine_args += list(extra_args)
        if engine_args:
            args += ["--", *engine_args]
        return [Invocation(CARGO, args, cwd=self.fuzz_dir)]


BACKENDS: dict[FuzzerKind, type[Backend]] = {
    FuzzerKind.AFL: AflBackend,
    FuzzerKind.HONGGFUZZ: HonggfuzzBackend,
    FuzzerKind.LIBFUZZER: LibfuzzerBackend,
}


def get_backend(kind: FuzzerKind | str, layout: WorkspaceLayout) -> Backend:
    return BACKENDS[FuzzerKind.parse(kind)](layout)
