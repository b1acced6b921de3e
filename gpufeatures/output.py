"""Writing labels out as key=value lines."""

from __future__ import annotations

import io
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Mapping, TextIO

log = logging.getLogger(__name__)


class WriterOutputer:
    """Writes labels as ``key=value`` lines to a text stream."""

    def __init__(self, stream: TextIO) -> None:
        self.stream = stream

    def output(self, labels: Mapping[str, str]) -> None:
        for key, value in labels.items():
            self.stream.write(f"{key}={value}\n")


class FileOutputer:
    """Writes labels as ``key=value`` lines to a file, replacing it atomically."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def output(self, labels: Mapping[str, str]) -> None:
        log.info("Writing labels to output file %s", self.path)

        buffer = io.StringIO()
        WriterOutputer(buffer).output(labels)

        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(buffer.getvalue())
                tmp.flush()
                os.fsync(tmp.fileno())
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, self.path)
        except OSError as err:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise OSError(f"error atomically writing file '{self.path}': {err}") from err


def to_file(path: str | Path | None) -> WriterOutputer | FileOutputer:
    """Return an outputer for ``path``, or for standard output if it is empty."""
    if not path:
        return WriterOutputer(sys.stdout)
    return FileOutputer(path)