import logging
import shutil
from pathlib import Path
from typing import Sequence

from warf.campaign.backends import Backend, LibfuzzerBackend
from warf.campaign.errors import WorkspaceError
from warf.campaign.layout import WorkspaceLayout
from warf.common.utils import copyanything, matches_any, skip_existing_copy

logger = logging.getLogger(__name__)

PLACEHOLDER = "###TARGET###"
DEBUG_TEMPLATE = "debug_template.rs"
DEBUG_PREFIX = "debug_"

# Relative to the workspace root; files matching these are never overwritten once present
DEFAULT_SKIP_EXISTING = ("*/corpora/*", "*/corpus/*", "*_workspace/*")


def render_template(template: str, target: str) -> str:
    """Replace every placeholder occurrence with the target name; nothing else changes."""
    return template.replace(PLACEHOLDER, target)


class WorkspaceMaterializer:
    """Builds the ephemeral `workspace/` tree that the engines compile and run in.

    Every call overwrites what it writes so a half-written tree left behind by an
    interrupted run is repaired on the next invocation.
    """

    def __init__(self, layout: WorkspaceLayout, skip_existing: Sequence[str] = DEFAULT_SKIP_EXISTING):
        self.layout = layout
        self.skip_existing = tuple(skip_existing)

    def ensure_dir(self, path: Path) -> Path:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorkspaceError("unable to create dir", path) from e
        return path

    def ensure_seed_dir(self) -> Path:
        return self.ensure_dir(self.layout.seed_dir)

    def _copy_file(self, src: Path, dst: Path) -> None:
        try:
            shutil.copy(src, dst)
        except OSError as e:
            raise WorkspaceError(f"unable to copy {src} to", dst) from e

    def _read(self, path: Path, what: str) -> str:
        try:
            return path.read_text()
        except OSError as e:
            raise WorkspaceError(f"error reading {what}", path) from e

    def _write(self, path: Path, content: str, what: str) -> Path:
        self.ensure_dir(path.parent)
        try:
            path.write_text(content)
        except OSError as e:
            raise WorkspaceError(f"error writing {what}", path) from e
        return path

    def _reset_dir(self, path: Path) -> Path:
        if path.exists():
            try:
                shutil.rmtree(path)
            except OSError as e:
                raise WorkspaceError("error removing", path) from e
        return self.ensure_dir(path)

    def _prune_stale(self, src: Path, dst: Path, workspace: Path) -> None:
        """Delete files under `dst` that no longer exist under `src`, sparing skip-on-exist ones."""
        if not dst.is_dir():
            return
        for path in sorted(dst.rglob("*"), reverse=True):
            relative = path.relative_to(dst)
            if (src / relative).exists() or matches_any(path.relative_to(workspace).as_posix(), self.skip_existing):
                continue
            try:
                if path.is_dir() and not path.is_symlink():
                    if any(path.iterdir()):
                        continue
                    path.rmdir()
                else:
                    path.unlink()
            except OSError as e:
                raise WorkspaceError("error removing", path) from e
            logger.debug(f"Removed stale {path}")

    def prepare_target_tree(self) -> Path:
        """Copy the shared `targets/` crate into the workspace, dropping files removed upstream."""
        src = self.layout.targets_dir
        workspace = self.ensure_dir(self.layout.workspace_dir)
        dst = workspace / src.name
        try:
            copyanything(src, dst, copy_function=skip_existing_copy(workspace, self.skip_existing))
        except (OSError, shutil.Error) as e:
            raise WorkspaceError(f"unable to copy {src} into", workspace) from e
        self._prune_stale(src, dst, workspace)
        logger.debug(f"Copied {src} to {dst}")
        return dst

    def prepare_backend_tree(self, backend: Backend) -> Path:
        """Create the backend work dir and copy its manifest, template and library into it.

        The harness dir is emptied so only harnesses generated by this run get built.
        """
        definition = backend.definition_dir
        work_dir = self.ensure_dir(backend.work_dir)
        src_dir = self.ensure_dir(work_dir / "src")

        self._copy_file(definition / backend.MANIFEST, work_dir / backend.MANIFEST)
        self._copy_file(definition / backend.TEMPLATE, work_dir / backend.TEMPLATE)
        self._copy_file(definition / backend.LIBRARY, src_dir / backend.LIBRARY.name)
        self._reset_dir(backend.harness_dir)
        logger.debug(f"[WARF] {backend.display_name}: prepared {work_dir}")
        return work_dir

    def prepare_fuzz_project(self, backend: LibfuzzerBackend) -> Path:
        """Reset the cargo-fuzz project so only freshly registered targets remain."""
        fuzz_dir = self.ensure_dir(backend.fuzz_dir)
        self._reset_dir(backend.harness_dir)
        self._copy_file(backend.definition_dir / "fuzz" / backend.MANIFEST, fuzz_dir / backend.MANIFEST)
        return fuzz_dir

    def instantiate_harness(self, backend: Backend, target: str) -> Path:
        template_path = backend.definition_dir / backend.TEMPLATE
        template = self._read(template_path, "template file")
        path = self._write(backend.harness_path(target), render_template(template, target), "fuzz target binary")
        logger.info(f"[WARF] {backend.display_name}: {target} created")
        return path

    def debug_harness_path(self, target: str) -> Path:
        return self.layout.debug_work_dir / "src" / "bin" / f"{DEBUG_PREFIX}{target}.rs"

    def prepare_debug_tree(self) -> Path:
        definition = self.layout.debug_definition_dir
        debug_dir = self.ensure_dir(self.layout.debug_work_dir)
        src_dir = self.ensure_dir(debug_dir / "src")

        self._copy_file(definition / Backend.MANIFEST, debug_dir / Backend.MANIFEST)
        self._copy_file(definition / Backend.LIBRARY, src_dir / Backend.LIBRARY.name)
        return debug_dir

    def instantiate_debug_harness(self, target: str) -> Path:
        template_path = self.layout.debug_definition_dir / DEBUG_TEMPLATE
        template = self._read(template_path, "debug template file")
        return self._write(self.debug_harness_path(target), render_template(template, target), "debug target binary")
