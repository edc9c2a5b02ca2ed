"""
ScratchDir: one temp directory holding one capture artefact (segment or voiced WAV).

Created right before use, removed on every exit path of the step that owns it.
remove() is idempotent so the owner can release early (quality skip, consumed)
and still register it on an ExitStack as the guaranteed fallback.
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
import uuid

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "dvoice-"


class ScratchDir:
    """Temp directory; `keep=True` turns remove() into a no-op (debugging)."""

    def __init__(self, root: str | None = None, keep: bool = False) -> None:
        if root:
            os.makedirs(root, exist_ok=True)
        self.path = tempfile.mkdtemp(prefix=SCRATCH_PREFIX, dir=root or None)
        self.keep = keep
        self._removed = False

    def new_file(self, ext: str = ".wav") -> str:
        """Unique file path inside this directory (file is not created)."""
        return os.path.join(self.path, f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}{ext}")

    @property
    def exists(self) -> bool:
        return os.path.isdir(self.path)

    def remove(self, force: bool = False) -> None:
        """Delete the directory tree. force=True ignores keep (aborted artefacts)."""
        if self._removed or (self.keep and not force):
            return
        self._removed = True
        shutil.rmtree(self.path, ignore_errors=True)
        logger.debug("Scratch dir removed: %s", self.path)

    def __enter__(self) -> "ScratchDir":
        return self

    def __exit__(self, *exc_info) -> None:
        self.remove()

    def __repr__(self) -> str:
        return f"ScratchDir({self.path!r}, keep={self.keep})"
