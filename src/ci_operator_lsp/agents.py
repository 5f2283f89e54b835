"""Directory agents for the ci-operator configuration and the step registry.

An agent keeps a snapshot of the files under its root (path -> mtime) and a
generation counter that moves forward whenever a reload observes a change.
The language server only reads generations; the data itself is for the
agents' own consumers.
"""

from __future__ import annotations

import logging
import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path

logger = logging.getLogger(__name__)

ErrorHook = Callable[[str, Exception], None]

REGISTRY_SUFFIXES: tuple[str, ...] = (
    "-ref.yaml",
    "-chain.yaml",
    "-workflow.yaml",
    "-commands.sh",
)


class DirectoryAgent(ABC):
    name = "directory"

    def __init__(
        self,
        root: Path | str,
        *,
        on_error: ErrorHook | None = None,
        recursive: bool = True,
    ) -> None:
        self.root = Path(root)
        self._on_error = on_error
        self._recursive = recursive
        self._lock = threading.Lock()
        self._snapshot: dict[Path, int] = {}
        self._generation = 0
        self.reload()

    @abstractmethod
    def accepts(self, path: Path) -> bool:
        """Whether ``path`` belongs in the snapshot."""

    def get_generation(self) -> int:
        with self._lock:
            return self._generation

    def files(self) -> tuple[Path, ...]:
        with self._lock:
            return tuple(sorted(self._snapshot))

    def reload(self) -> bool:
        """Rescan the root; bump the generation if anything changed."""
        snapshot = self._scan()
        with self._lock:
            if snapshot == self._snapshot:
                return False
            self._snapshot = snapshot
            self._generation += 1
            generation = self._generation
        logger.debug(
            "%s agent loaded %d files from %s (generation %d)",
            self.name,
            len(snapshot),
            self.root,
            generation,
        )
        return True

    def _report(self, exc: Exception) -> None:
        logger.warning("%s agent failed to read %s: %s", self.name, self.root, exc)
        if self._on_error is not None:
            self._on_error(self.name, exc)

    def _scan(self) -> dict[Path, int]:
        snapshot: dict[Path, int] = {}
        if not self.root.is_dir():
            # Missing roots are legal; they simply hold nothing yet.
            return snapshot
        for dirpath, dirnames, filenames in os.walk(self.root, onerror=self._report):
            if not self._recursive:
                dirnames.clear()
            for filename in filenames:
                path = Path(dirpath) / filename
                if not self.accepts(path):
                    continue
                try:
                    snapshot[path] = path.stat().st_mtime_ns
                except OSError as exc:
                    self._report(exc)
        return snapshot


class ConfigAgent(DirectoryAgent):
    """Agent over ``ci-operator/config``: every YAML file counts."""

    name = "config"

    def __init__(self, root: Path | str, *, on_error: ErrorHook | None = None) -> None:
        super().__init__(root, on_error=on_error)

    def accepts(self, path: Path) -> bool:
        return path.suffix == ".yaml"


class RegistryAgent(DirectoryAgent):
    """Agent over ``ci-operator/step-registry``.

    Only files following the registry naming convention are indexed. A flat
    registry keeps all of them directly under the root.
    """

    name = "registry"

    def __init__(
        self,
        root: Path | str,
        *,
        on_error: ErrorHook | None = None,
        flat: bool = False,
    ) -> None:
        super().__init__(root, on_error=on_error, recursive=not flat)

    def accepts(self, path: Path) -> bool:
        return path.name.endswith(REGISTRY_SUFFIXES)
