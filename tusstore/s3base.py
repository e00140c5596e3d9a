"""Configuration of the S3 store and the object-level operations it builds on."""

from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass
from typing import IO

from .errors import TusError
from .part_producer import cleanup_temp_file
from .s3api import GetObjectResult, Part, S3API, S3Error, split_ids

_TEMP_PREFIX = "tusd-s3-tmp-"
_MISSING_PART_CODES = ("NoSuchKey", "NotFound", "AccessDenied")

_KIB = 1024
_MIB = 1024 * _KIB
_GIB = 1024 * _MIB
_TIB = 1024 * _GIB


def _with_prefix(prefix: str, key: str) -> str:
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    return prefix + key


@dataclass
class S3StoreBase:
    """Settings of an S3-backed upload store and its helper operations.

    ``object_prefix`` is prepended to the key of every uploaded object and
    ``metadata_object_prefix`` to the ``.info`` and ``.part`` objects; when the
    latter is empty, ``object_prefix`` is used for them as well.
    """

    bucket: str
    service: S3API
    object_prefix: str = ""
    metadata_object_prefix: str = ""
    max_part_size: int = 5 * _GIB
    min_part_size: int = 5 * _MIB
    preferred_part_size: int = 50 * _MIB
    max_multipart_parts: int = 10000
    max_object_size: int = 5 * _TIB
    max_buffered_parts: int = 20
    temporary_directory: str = ""
    disable_content_hashes: bool = False

    def key_with_prefix(self, key: str) -> str:
        """Return the object key for ``key`` under ``object_prefix``."""
        return _with_prefix(self.object_prefix, key)

    def metadata_key_with_prefix(self, key: str) -> str:
        """Return the key of a metadata object under the metadata prefix."""
        return _with_prefix(self.metadata_object_prefix or self.object_prefix, key)

    def calc_optimal_part_size(self, size: int) -> int:
        """Choose a part size so that ``size`` bytes fit into the allowed number of parts."""
        if size <= self.preferred_part_size * self.max_multipart_parts:
            optimal = self.preferred_part_size
        else:
            quotient, remainder = divmod(size, self.max_multipart_parts)
            # Round up only when needed: an unconditional +1 could push the
            # result past max_part_size when the object size is an exact fit.
            optimal = quotient if remainder == 0 else quotient + 1

        if optimal > self.max_part_size:
            raise TusError(
                f"calcOptimalPartSize: to upload {size} bytes optimalPartSize "
                f"{optimal} must exceed MaxPartSize {self.max_part_size}"
            )
        return optimal

    def list_all_parts(self, upload_id: str) -> list[Part]:
        """List every part of the multipart upload behind ``upload_id``, across pages."""
        object_id, multipart_id = split_ids(upload_id)
        parts: list[Part] = []
        marker = 0
        while True:
            page = self.service.list_parts(
                self.bucket,
                self.key_with_prefix(object_id),
                multipart_id,
                part_number_marker=marker,
            )
            parts.extend(page.parts)
            if not page.is_truncated:
                return parts
            marker = page.next_part_number_marker or 0

    def get_incomplete_part(self, upload_id: str) -> GetObjectResult | None:
        """Open the stored incomplete part of an upload, or return None if there is none."""
        try:
            return self.service.get_object(
                self.bucket, self.metadata_key_with_prefix(upload_id + ".part")
            )
        except S3Error as exc:
            if exc.code in _MISSING_PART_CODES:
                return None
            raise

    def download_incomplete_part(self, upload_id: str) -> tuple[IO[bytes] | None, int]:
        """Copy the incomplete part into a temporary file.

        Returns the file, positioned at its start, and its length, or
        ``(None, 0)`` when no incomplete part exists.
        """
        result = self.get_incomplete_part(upload_id)
        if result is None:
            return None, 0

        try:
            part_file = tempfile.NamedTemporaryFile(
                mode="w+b",
                prefix=_TEMP_PREFIX,
                dir=self.temporary_directory or None,
                delete=False,
            )
            try:
                shutil.copyfileobj(result.body, part_file)
                length = part_file.tell()
                if result.content_length is not None and length < result.content_length:
                    raise TusError("short read of incomplete upload")
                part_file.flush()
                part_file.seek(0)
            except BaseException:
                cleanup_temp_file(part_file)
                raise
        finally:
            result.body.close()

        return part_file, length

    def put_incomplete_part(self, upload_id: str, file: IO[bytes]) -> None:
        """Store ``file`` as the incomplete part of an upload and remove it from disk."""
        try:
            self.service.put_object(
                self.bucket, self.metadata_key_with_prefix(upload_id + ".part"), file
            )
        finally:
            cleanup_temp_file(file)

    def delete_incomplete_part(self, upload_id: str) -> None:
        """Delete the stored incomplete part of an upload."""
        self.service.delete_object(
            self.bucket, self.metadata_key_with_prefix(upload_id + ".part")
        )


__all__ = ["S3StoreBase"]

# Keep ``os`` referenced for type checkers that resolve PathLike in annotations.
_ = os