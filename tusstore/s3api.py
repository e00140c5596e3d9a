"""The object-storage interface used by the S3 store and its data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import BinaryIO, Protocol, runtime_checkable


class S3Error(Exception):
    """An error reported by the object-storage service, identified by its code."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.message = message


def is_s3_error(error: BaseException | None, code: str) -> bool:
    """Tell whether ``error`` is a service error with the given code."""
    return isinstance(error, S3Error) and error.code == code


def split_ids(upload_id: str) -> tuple[str, str]:
    """Split ``"<object id>+<multipart id>"``; both parts are empty if there is no ``+``."""
    object_id, sep, multipart_id = upload_id.partition("+")
    if not sep:
        return "", ""
    return object_id, multipart_id


@dataclass
class Part:
    """One part of a multipart upload as listed by the service."""

    size: int | None = None
    etag: str | None = None
    part_number: int | None = None


@dataclass
class CompletedPart:
    """A part reference used to complete a multipart upload."""

    etag: str | None
    part_number: int | None


@dataclass
class ListPartsResult:
    """One page of parts of a multipart upload."""

    parts: list[Part] = field(default_factory=list)
    is_truncated: bool = False
    next_part_number_marker: int | None = None


@dataclass
class GetObjectResult:
    """An object's content stream and its declared length."""

    body: BinaryIO
    content_length: int | None = None


@dataclass
class DeleteObjectError:
    """A failure for one key in a batch delete."""

    code: str
    key: str
    message: str


@runtime_checkable
class S3API(Protocol):
    """Operations the S3 store needs from an object-storage service.

    Implementations raise S3Error for failures reported by the service.
    """

    def put_object(
        self, bucket: str, key: str, body: BinaryIO, content_length: int | None = None
    ) -> None:
        """Store ``body`` under ``key``."""

    def list_parts(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number_marker: int | None = None,
        max_parts: int | None = None,
    ) -> ListPartsResult:
        """List the parts of a multipart upload after ``part_number_marker``."""

    def upload_part(
        self, bucket: str, key: str, upload_id: str, part_number: int, body: BinaryIO
    ) -> str | None:
        """Upload one part and return its ETag."""

    def get_object(self, bucket: str, key: str) -> GetObjectResult:
        """Open the object stored under ``key``."""

    def create_multipart_upload(
        self, bucket: str, key: str, metadata: dict[str, str]
    ) -> str:
        """Start a multipart upload and return its id."""

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        """Abort a multipart upload and drop its parts."""

    def delete_object(self, bucket: str, key: str) -> None:
        """Delete one object."""

    def delete_objects(
        self, bucket: str, keys: list[str], quiet: bool = True
    ) -> list[DeleteObjectError]:
        """Delete several objects and return the failures per key."""

    def complete_multipart_upload(
        self, bucket: str, key: str, upload_id: str, parts: list[CompletedPart]
    ) -> None:
        """Assemble the listed parts into the final object."""

    def upload_part_copy(
        self, bucket: str, key: str, upload_id: str, part_number: int, copy_source: str
    ) -> None:
        """Use an existing object, named ``bucket/key``, as one part."""