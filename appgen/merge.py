"""Filesystem merge engine.

Moves a freshly generated module into its container directory. Regenerating
an app fully replaces the previous copy of the module (no file-by-file merge),
and the placeholder unit test that the generator always emits is discarded
afterwards.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER_TEST_PATTERNS: tuple[str, ...] = (
    "*ApplicationTests.java",
    "*ApplicationTests.kt",
)


class RelocationError(Exception):
    """Raised when a generated module cannot be moved into its container."""

    def __init__(self, module_key: str, message: str) -> None:
        self.module_key = module_key
        super().__init__(f"Relocation of {module_key!r} failed: {message}")


def cleanup(path: str | Path) -> None:
    """Recursively delete *path*. A missing path is not an error.

    Raises:
        OSError: If *path* exists but cannot be removed.
    """
    path = Path(path)
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)


def strip_placeholder_tests(
    module_dir: str | Path,
    patterns: Iterable[str] = DEFAULT_PLACEHOLDER_TEST_PATTERNS,
) -> list[Path]:
    """Delete generator-emitted placeholder tests under ``module_dir/src/test``.

    Directories left empty by the deletion are pruned bottom-up, up to and
    including ``src/test`` itself. Directories holding anything else are kept.

    Returns:
        The deleted files.
    """
    test_root = Path(module_dir) / "src" / "test"
    if not test_root.is_dir():
        return []

    removed: list[Path] = []
    for pattern in patterns:
        for candidate in sorted(test_root.rglob(pattern)):
            if candidate.is_file():
                candidate.unlink()
                removed.append(candidate)

    if removed:
        # Deepest first so parents are empty by the time they are visited.
        for directory in sorted(
            (d for d in test_root.rglob("*") if d.is_dir()),
            key=lambda d: len(d.parts),
            reverse=True,
        ):
            if not any(directory.iterdir()):
                directory.rmdir()
        if not any(test_root.iterdir()):
            test_root.rmdir()

    for path in removed:
        logger.debug("Removed placeholder test %s", path)
    return removed


def relocate(
    generated_root: str | Path,
    module_key: str,
    container_dir: str | Path,
    placeholder_patterns: Iterable[str] = DEFAULT_PLACEHOLDER_TEST_PATTERNS,
) -> Path:
    """Move ``generated_root/module_key`` to ``container_dir/module_key``.

    Any existing ``container_dir/module_key`` is removed first. The move is a
    rename when both paths are on the same filesystem and a copy followed by
    deletion of the source otherwise. Placeholder tests are stripped from the
    relocated module.

    Returns:
        The module's new location.

    Raises:
        RelocationError: If the source is missing, or removal or move fails.
    """
    source = Path(generated_root) / module_key
    target = Path(container_dir) / module_key

    if not source.is_dir():
        raise RelocationError(module_key, f"generated module not found at {source}")

    try:
        if target.exists() or target.is_symlink():
            logger.info("Replacing existing module at %s", target)
            cleanup(target)
        shutil.move(str(source), str(target))
        strip_placeholder_tests(target, placeholder_patterns)
    except OSError as exc:
        raise RelocationError(module_key, f"{type(exc).__name__}: {exc}") from exc

    logger.info("Moved %s to %s", module_key, target)
    return target
