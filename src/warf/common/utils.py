import errno
import fnmatch
import logging
import shutil
from os import PathLike
from pathlib import Path
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)


def copyanything(src: PathLike, dst: PathLike, **kwargs: Any) -> None:
    """Copy a file or directory to a destination.
    This function will:
    - Copy directories recursively
    - Copy single files
    - Merge into an existing destination directory
    """
    src, dst = Path(src), Path(dst)
    try:
        shutil.copytree(src, dst, dirs_exist_ok=True, **kwargs)
    except OSError as exc:
        if exc.errno in (errno.ENOTDIR, errno.EINVAL):
            shutil.copy(src, dst)
        else:
            raise


def matches_any(relative: str, patterns: Iterable[str]) -> bool:
    """Return True if the POSIX-style relative path matches one of the glob patterns."""
    return any(fnmatch.fnmatch(relative, pattern) for pattern in patterns)


def skip_existing_copy(root: Path, patterns: Iterable[str]) -> Callable[[str, str], object]:
    """Build a `copy_function` for `shutil.copytree` that overwrites every file
    except the ones already present under `root` whose relative path matches
    one of `patterns`."""
    patterns = tuple(patterns)
    root = Path(root)

    def _copy(src: str, dst: str) -> object:
        dst_path = Path(dst)
        if dst_path.exists():
            try:
                relative = dst_path.relative_to(root).as_posix()
            except ValueError:
                relative = dst_path.name
            if matches_any(relative, patterns):
                logger.debug("Keeping existing %s", dst_path)
                return dst
        return shutil.copy2(src, dst)

    return _copy
