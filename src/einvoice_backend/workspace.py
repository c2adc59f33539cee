"""
Per-request temporary workspaces.

Every conversion gets its own freshly created directory. Uploaded parts are
written into it under their sanitized base name, outputs are declared inside
it, and the whole tree is removed when the request finishes, whatever the
outcome.

Cleanup is best-effort per entry: a file that cannot be deleted is logged and
skipped so the rest of the tree is still removed.
"""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Set, Union

from .errors import InvalidArgumentError
from .utils import ensure_directory, safe_filename

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "einvoice-"


@dataclass(frozen=True)
class UploadedPart:
    """
    One file part of a multipart request.

    Attributes:
        name: Form field name the part was sent under
        filename: Filename declared by the client (may be empty)
        data: Raw content
        content_type: Declared MIME type, if any
    """

    name: str
    filename: str
    data: bytes
    content_type: Optional[str] = None


class TempWorkspace:
    """
    An exclusively owned temporary directory.

    Use as a context manager so the directory is released on every exit path:

        with TempWorkspace.create() as workspace:
            pdf_path = workspace.write_input(part, "input.pdf")
            out_path = workspace.resolve("output.xml")
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self._reserved: Set[str] = set()
        self._closed = False

    @classmethod
    def create(cls, parent: Union[str, Path, None] = None, prefix: str = DEFAULT_PREFIX) -> "TempWorkspace":
        if parent is not None:
            parent = ensure_directory(Path(parent))
        root = Path(tempfile.mkdtemp(prefix=prefix, dir=parent))
        logger.debug(f"Created workspace {root}")
        return cls(root)

    def resolve(self, filename: str) -> Path:
        """
        Return a path inside the workspace without creating anything.

        Raises:
            InvalidArgumentError: If the name would escape the workspace root
        """
        candidate = (self.root / filename).resolve()
        base = self.root.resolve()
        if candidate == base or base not in candidate.parents:
            raise InvalidArgumentError(f"Invalid file name: {filename}")
        self._reserved.add(candidate.name)
        return candidate

    def _unused_name(self, name: str) -> str:
        # Inputs never overwrite each other or a declared output
        candidate = name
        counter = 1
        while candidate in self._reserved or (self.root / candidate).exists():
            candidate = f"{counter}-{name}"
            counter += 1
        return candidate

    def write_input(self, part: UploadedPart, fallback_name: str) -> Path:
        """
        Copy an uploaded part into the workspace.

        The declared filename is reduced to its base name; the fallback is
        used when nothing usable remains. A name already taken in this
        workspace gets a numeric prefix.

        Args:
            part: The uploaded part to materialize
            fallback_name: Name to use when the declared filename is empty

        Returns:
            Path of the written file
        """
        return self.write_bytes(safe_filename(part.filename) or fallback_name, part.data)

    def write_bytes(self, filename: str, data: bytes) -> Path:
        destination = self.resolve(self._unused_name(safe_filename(filename) or "data"))
        destination.write_bytes(data)
        return destination

    def make_directory(self, name: str) -> Path:
        """Create a fresh subdirectory; a taken name gets a numeric prefix."""
        directory = self.resolve(self._unused_name(safe_filename(name) or "dir"))
        directory.mkdir()
        return directory

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        delete_tree(self.root)

    def __enter__(self) -> "TempWorkspace":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def delete_tree(root: Path) -> None:
    """
    Remove a directory tree deepest-first.

    Individual failures are logged and do not stop the removal of the
    remaining entries.
    """
    if not root.exists():
        return
    for dirpath, dirnames, filenames in os.walk(root, topdown=False):
        for name in filenames:
            _remove(Path(dirpath) / name, os.unlink)
        for name in dirnames:
            path = Path(dirpath) / name
            _remove(path, os.unlink if path.is_symlink() else os.rmdir)
    _remove(root, os.rmdir)


def _remove(path: Path, remover) -> None:
    try:
        remover(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning(f"Could not delete {path}: {exc}")


@contextmanager
def temp_workspace(parent: Union[str, Path, None] = None, prefix: str = DEFAULT_PREFIX) -> Iterator[TempWorkspace]:
    workspace = TempWorkspace.create(parent=parent, prefix=prefix)
    try:
        yield workspace
    finally:
        workspace.close()
