"""Path containment for every agent-originated file or directory access."""

from __future__ import annotations

import logging
from pathlib import Path, PurePath

logger = logging.getLogger(__name__)


class SandboxViolation(ValueError):
    """A path was rejected by the sandbox."""


class PathSandbox:
    """Validates paths against a fixed project root.

    The root is canonicalized once at construction. A path is accepted only
    if it contains no ``..`` segment and its canonical form is the root or a
    descendant of it. Relative paths are resolved against the root.
    """

    def __init__(self, root: str | Path) -> None:
        try:
            self._root = Path(root).resolve(strict=True)
        except (OSError, ValueError) as e:
            raise SandboxViolation(f"invalid root dir: {e}") from e
        if not self._root.is_dir():
            raise SandboxViolation(f"invalid root dir: {self._root} is not a directory")

    @property
    def root(self) -> Path:
        return self._root

    def validate(self, path: str | Path, allow_missing: bool = False) -> Path:
        """Return the canonical form of ``path`` or raise SandboxViolation.

        With ``allow_missing`` the leaf may not exist yet (write targets), but
        its parent must; the result is the parent's canonical form joined
        with the leaf name, so a dangling symlink cannot redirect the write.
        """
        if "\x00" in str(path):
            raise SandboxViolation("path contains a NUL byte")
        raw = PurePath(path)
        if ".." in raw.parts:
            raise SandboxViolation("parent paths are not allowed")

        candidate = Path(raw) if raw.is_absolute() else self._root / raw

        try:
            canonical = candidate.resolve(strict=True)
        except (OSError, ValueError) as e:
            if not allow_missing:
                raise SandboxViolation(f"failed to resolve path: {e}") from e
            canonical = self._resolve_missing_leaf(candidate)

        if not canonical.is_relative_to(self._root):
            logger.warning("Rejected path outside project root: %s", canonical)
            raise SandboxViolation("path is outside project root")
        return canonical

    @staticmethod
    def _resolve_missing_leaf(candidate: Path) -> Path:
        if not candidate.name:
            raise SandboxViolation("path has no file name")
        if candidate.is_symlink():
            # Dangling link: judge it by where a write would land
            return candidate.resolve()
        try:
            parent = candidate.parent.resolve(strict=True)
        except (OSError, ValueError) as e:
            raise SandboxViolation("invalid parent path") from e
        return parent / candidate.name
