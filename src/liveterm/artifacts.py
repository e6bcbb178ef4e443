"""Temporary file handling for executions.

Every execution writes its source to the shared temp directory and, for
compiled languages, produces a binary next to it.  Names carry a random
component so concurrent users never collide.  Isolated languages (Java,
C#) get a private sub directory: their toolchains write files we cannot
name in advance, and the file may have to be named after a declared type,
so two users submitting ``class Main`` at the same time must not share a
directory.

Deletion is best effort: failures are logged and swallowed, a cleanup
problem must never hide the result of the program itself.
"""

from __future__ import annotations

import shutil
import uuid
from pathlib import Path
from typing import Iterable, Optional

from .errors import ArtifactIOError
from .languages import LanguageDescriptor
from .logging import get_logger

logger = get_logger()


class ArtifactManager:
    """Create, rename and delete the files produced by an execution."""

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _unique_stem() -> str:
        return f"run_{uuid.uuid4().hex}"

    def write_source(self, code: str, descriptor: LanguageDescriptor) -> Path:
        """Write ``code`` to a fresh file and return its path.

        Isolated languages get their own ``run_<uuid>/`` directory holding
        the source and any scaffold files.
        """
        stem = self._unique_stem()
        if not descriptor.isolated:
            path = self.base_dir / f"{stem}.{descriptor.extension}"
            self._write(path, code)
            return path

        workdir = self.base_dir / stem
        try:
            workdir.mkdir()
        except OSError as exc:
            raise ArtifactIOError(f"Error creating directory {workdir.name}: {exc}") from exc
        path = workdir / (descriptor.source_name or f"{stem}.{descriptor.extension}")
        try:
            for name, content in (descriptor.scaffold or {}).items():
                self._write(workdir / name, content)
            self._write(path, code)
        except ArtifactIOError:
            self.remove([workdir])
            raise
        return path

    @staticmethod
    def _write(path: Path, text: str) -> None:
        try:
            path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise ArtifactIOError(f"Error writing file {path.name}: {exc}") from exc

    def reconcile_entry_name(self, path: Path, code: str, descriptor: LanguageDescriptor) -> Path:
        """Rename ``path`` after the type declared in ``code`` when required.

        The renamed file always lives in a private directory under
        :attr:`base_dir`.  Returns ``path`` unchanged when the language has
        no naming rule or the source declares no type.
        """
        if descriptor.entry_resolver is None:
            return path
        name = descriptor.entry_resolver(code)
        if name is None or name == path.stem:
            return path

        workdir = self.workdir_for(path)
        target = (workdir or self.base_dir / self._unique_stem()) / f"{name}.{descriptor.extension}"
        try:
            if workdir is None:
                target.parent.mkdir()
            path.rename(target)
        except OSError as exc:
            raise ArtifactIOError(f"Error renaming {path.name} to {target.name}: {exc}") from exc
        logger.info("Renamed %s to %s to match declared type", path.name, target)
        return target

    def artifact_path(self, source: Path, descriptor: LanguageDescriptor) -> Optional[Path]:
        """Where the compiler output for ``source`` will be written."""
        if not descriptor.compiled:
            return None
        return source.with_suffix(descriptor.artifact_suffix or "")

    def workdir_for(self, source: Path) -> Optional[Path]:
        """Return the private directory of ``source``, if it has one."""
        if source.parent != self.base_dir and source.parent.parent == self.base_dir:
            return source.parent
        return None

    def remove(self, paths: Iterable[Optional[Path]]) -> None:
        for path in paths:
            if path is None:
                continue
            try:
                if path.is_dir():
                    shutil.rmtree(path)
                else:
                    path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Cleanup of %s failed: %s", path, exc)

    def cleanup(self, execution) -> None:
        """Delete every file ``execution`` left behind. Never raises."""
        source = getattr(execution, "source_path", None)
        artifact = getattr(execution, "artifact_path", None)
        workdir = self.workdir_for(source) if source is not None else None
        try:
            self.remove([source, artifact, workdir])
        except Exception:
            logger.exception("Unexpected error cleaning up execution %s", getattr(execution, "id", "?"))
