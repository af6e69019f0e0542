"""ScratchSpace — temporary storage owned by exactly one pipeline run.

Everything written below the scratch root (the staged input copy, the
segment directory) is removed when the context exits, whether the run
succeeded or raised.
"""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, Optional

logger = logging.getLogger(__name__)


class ScratchSpace:
    def __init__(self, parent_dir: Optional[str] = None, prefix: str = "transcribe-"):
        self._parent_dir = parent_dir
        self._prefix = prefix
        self._root: Optional[Path] = None

    @property
    def root(self) -> Path:
        if self._root is None:
            raise RuntimeError("ScratchSpace used outside its context")
        return self._root

    def __enter__(self) -> "ScratchSpace":
        if self._parent_dir:
            Path(self._parent_dir).mkdir(parents=True, exist_ok=True)
        self._root = Path(tempfile.mkdtemp(prefix=self._prefix, dir=self._parent_dir))
        logger.debug(f"Acquired scratch space {self._root}")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        root, self._root = self._root, None
        if root is None:
            return
        shutil.rmtree(root, ignore_errors=True)
        if root.exists():
            logger.warning(f"Scratch space {root} could not be fully removed")
        else:
            logger.debug(f"Released scratch space {root}")

    def write_stream(self, stream: BinaryIO, filename: str) -> Path:
        """Copy a caller-owned stream into the scratch root."""
        target = self.root / filename
        with open(target, "wb") as out:
            shutil.copyfileobj(stream, out)
        return target

    def subdir(self, name: str) -> Path:
        path = self.root / name
        path.mkdir(parents=True, exist_ok=True)
        return path
