"""Split a byte stream into temporary files of a fixed size."""

from __future__ import annotations

import os
import queue
import tempfile
import threading
from collections.abc import Iterator
from contextlib import suppress
from typing import IO, BinaryIO

_TEMP_PREFIX = "tusd-s3-tmp-"
_COPY_CHUNK = 32 * 1024
_POLL_INTERVAL = 0.05


def cleanup_temp_file(file: IO[bytes]) -> None:
    """Close a temporary file and remove it from disk."""
    file.close()
    with suppress(FileNotFoundError):
        os.remove(file.name)


class PartProducer:
    """Reads ``source`` and hands out parts as temporary files.

    ``produce`` is meant to run in its own thread while the consumer
    iterates over the producer. Setting ``done`` asks the producer to stop;
    after a failed read the exception is kept in ``error``.
    """

    def __init__(
        self,
        source: BinaryIO,
        temporary_directory: str | os.PathLike[str] | None = None,
        max_buffered: int = 1,
    ) -> None:
        self.source = source
        self.temporary_directory = temporary_directory or None
        self.files: queue.Queue[IO[bytes]] = queue.Queue(maxsize=max(1, max_buffered))
        self.done = threading.Event()
        self.error: Exception | None = None
        self._finished = threading.Event()

    def produce(self, part_size: int) -> None:
        """Fill temporary files of up to ``part_size`` bytes until the source ends."""
        try:
            while not self.done.is_set():
                try:
                    file = self._next_part(part_size)
                except Exception as exc:
                    self.error = exc
                    return
                if file is None:
                    return
                if not self._offer(file):
                    cleanup_temp_file(file)
                    return
        finally:
            self._finished.set()

    def __iter__(self) -> Iterator[IO[bytes]]:
        """Yield parts in order; on exit, stop the producer and drop unread parts."""
        try:
            while True:
                try:
                    file = self.files.get(timeout=_POLL_INTERVAL)
                except queue.Empty:
                    if self._finished.is_set() and self.files.empty():
                        return
                    continue
                yield file
        finally:
            self.done.set()
            self._finished.wait()
            self._discard_buffered()

    def _offer(self, file: IO[bytes]) -> bool:
        while not self.done.is_set():
            try:
                self.files.put(file, timeout=_POLL_INTERVAL)
            except queue.Full:
                continue
            return True
        return False

    def _discard_buffered(self) -> None:
        while True:
            try:
                file = self.files.get_nowait()
            except queue.Empty:
                return
            cleanup_temp_file(file)

    def _next_part(self, size: int) -> IO[bytes] | None:
        file = tempfile.NamedTemporaryFile(
            mode="w+b", prefix=_TEMP_PREFIX, dir=self.temporary_directory, delete=False
        )
        try:
            written = 0
            while written < size:
                chunk = self.source.read(min(_COPY_CHUNK, size - written))
                if not chunk:
                    break
                file.write(chunk)
                written += len(chunk)
        except BaseException:
            cleanup_temp_file(file)
            raise

        if written == 0:
            cleanup_temp_file(file)
            return None

        file.flush()
        file.seek(0)
        return file