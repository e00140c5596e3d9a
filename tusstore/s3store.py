"""Resumable uploads kept as multipart uploads in an S3-compatible bucket.

Every upload owns three objects: the final object, an ``.info`` object with
the JSON-encoded FileInfo, and, while data smaller than the minimum part
size is pending, an ``.part`` object holding that incomplete part.
"""

from __future__ import annotations

import dataclasses
import io
import os
import re
import secrets
import shutil
import tempfile
import threading
import urllib.error
import urllib.request
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import IO, BinaryIO, Protocol, runtime_checkable

from .errors import HTTPError, MultiError, NotFoundError, TusError
from .fileinfo import FileInfo
from .part_producer import PartProducer, cleanup_temp_file
from .s3api import CompletedPart, Part, S3Error, is_s3_error, split_ids
from .s3base import S3StoreBase

# Every character that may not appear in an HTTP header value.
_NON_PRINTABLE = re.compile(r"[^\x09\x20-\x7E]")
_CONCAT_TEMP_PREFIX = "tusd-s3-concat-tmp-"
_PRESIGN_EXPIRY_SECONDS = 15 * 60


@runtime_checkable
class _PresigningS3API(Protocol):
    def presign_upload_part(
        self, bucket: str, key: str, upload_id: str, part_number: int, expires_in: int
    ) -> str: ...


class _ChainedReader:
    """Reads several binary streams one after another."""

    def __init__(self, *sources: IO[bytes]) -> None:
        self._sources = list(sources)

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            data = b"".join(source.read() for source in self._sources)
            self._sources.clear()
            return data
        while self._sources:
            chunk = self._sources[0].read(size)
            if chunk:
                return chunk
            self._sources.pop(0)
        return b""


def _file_size(file: IO[bytes]) -> int:
    return os.fstat(file.fileno()).st_size


class S3Store(S3StoreBase):
    """An upload store backed by S3 multipart uploads."""

    def new_upload(self, info: FileInfo) -> S3Upload:
        """Create the multipart upload and the info object for a new upload."""
        if info.size > self.max_object_size:
            raise TusError(
                f"s3store: upload size of {info.size} bytes exceeds "
                f"MaxObjectSize of {self.max_object_size} bytes"
            )

        object_id = info.id or secrets.token_hex(16)
        metadata = {
            name: _NON_PRINTABLE.sub("?", value)
            for name, value in (info.meta_data or {}).items()
        }
        key = self.key_with_prefix(object_id)

        try:
            multipart_id = self.service.create_multipart_upload(self.bucket, key, metadata)
        except Exception as exc:
            raise TusError(f"s3store: unable to create multipart upload:\n{exc}") from exc

        info = dataclasses.replace(
            info,
            id=f"{object_id}+{multipart_id}",
            storage={"Type": "s3store", "Bucket": self.bucket, "Key": key},
        )
        upload = S3Upload(info.id, self)
        try:
            upload._write_info(info)
        except Exception as exc:
            raise TusError(f"s3store: unable to create info file:\n{exc}") from exc
        return upload

    def get_upload(self, upload_id: str) -> S3Upload:
        """Return a handle for an existing upload; nothing is fetched yet."""
        return S3Upload(upload_id, self)

    @staticmethod
    def _as_s3_upload(upload: object) -> S3Upload:
        if not isinstance(upload, S3Upload):
            raise TypeError(f"expected an S3Upload, got {type(upload).__name__}")
        return upload

    def as_terminatable_upload(self, upload: S3Upload) -> S3Upload:
        """Return the upload as one that can be terminated."""
        return self._as_s3_upload(upload)

    def as_length_declarable_upload(self, upload: S3Upload) -> S3Upload:
        """Return the upload as one whose length can be declared later."""
        return self._as_s3_upload(upload)

    def as_concatable_upload(self, upload: S3Upload) -> S3Upload:
        """Return the upload as one that can be built from partial uploads."""
        return self._as_s3_upload(upload)


@dataclass(eq=False)
class S3Upload:
    """One upload in an S3Store, addressed as ``"<object id>+<multipart id>"``.

    ``info`` caches the upload's FileInfo once it has been fetched or written.
    """

    id: str
    store: S3Store
    info: FileInfo | None = None

    # -- info -------------------------------------------------------------

    def _write_info(self, info: FileInfo) -> None:
        object_id, _ = split_ids(self.id)
        self.info = info
        payload = info.to_json()
        self.store.service.put_object(
            self.store.bucket,
            self.store.metadata_key_with_prefix(object_id + ".info"),
            io.BytesIO(payload),
            len(payload),
        )

    def get_info(self) -> FileInfo:
        """Return the upload's info, fetching it from the bucket on first use."""
        if self.info is None:
            self.info = self._fetch_info()
        return dataclasses.replace(self.info)

    def _fetch_info(self) -> FileInfo:
        store = self.store
        object_id, _ = split_ids(self.id)

        try:
            result = store.service.get_object(
                store.bucket, store.metadata_key_with_prefix(object_id + ".info")
            )
        except S3Error as exc:
            if exc.code == "NoSuchKey":
                raise NotFoundError() from None
            raise
        try:
            info = FileInfo.from_json(result.body.read())
        finally:
            result.body.close()

        try:
            parts = store.list_all_parts(self.id)
        except S3Error as exc:
            # A missing multipart upload next to an existing info object means
            # the upload has been completed.
            if exc.code in ("NoSuchUpload", "NoSuchKey"):
                info.offset = info.size
                return info
            raise

        offset = sum(part.size or 0 for part in parts)

        incomplete = store.get_incomplete_part(object_id)
        if incomplete is not None:
            incomplete.body.close()
            offset += incomplete.content_length or 0

        info.offset = offset
        return info

    # -- writing ----------------------------------------------------------

    def write_chunk(self, offset: int, src: IO[bytes]) -> int:
        """Append the data from ``src`` at ``offset`` and return the bytes taken."""
        store = self.store
        object_id, multipart_id = split_ids(self.id)

        info = self.get_info()
        size = info.size
        part_size = store.calc_optimal_part_size(size)
        next_part_number = len(store.list_all_parts(self.id)) + 1

        incomplete_file, incomplete_size = store.download_incomplete_part(object_id)
        try:
            source: IO[bytes] | _ChainedReader = src
            if incomplete_file is not None:
                store.delete_incomplete_part(object_id)
                source = _ChainedReader(incomplete_file, src)

            producer = PartProducer(
                source, store.temporary_directory, store.max_buffered_parts
            )
            worker = threading.Thread(
                target=producer.produce, args=(part_size,), daemon=True
            )
            worker.start()
            parts = iter(producer)
            bytes_uploaded = 0
            try:
                for file in parts:
                    n = _file_size(file)
                    is_final = (
                        not info.size_is_deferred
                        and size == (offset - incomplete_size) + n
                    )
                    if n >= store.min_part_size or is_final:
                        self._put_part(object_id, multipart_id, next_part_number, file, n)
                    else:
                        store.put_incomplete_part(object_id, file)
                        return bytes_uploaded + n - incomplete_size
                    offset += n
                    bytes_uploaded += n
                    next_part_number += 1
            finally:
                parts.close()
                producer.done.set()
                worker.join()

            if producer.error is not None:
                raise producer.error
            return bytes_uploaded - incomplete_size
        finally:
            if incomplete_file is not None:
                cleanup_temp_file(incomplete_file)

    def _put_part(
        self,
        object_id: str,
        multipart_id: str,
        part_number: int,
        file: IO[bytes],
        size: int,
    ) -> None:
        store = self.store
        key = store.key_with_prefix(object_id)
        try:
            if not store.disable_content_hashes:
                store.service.upload_part(store.bucket, key, multipart_id, part_number, file)
            else:
                self._put_part_presigned(key, multipart_id, part_number, file, size)
        finally:
            cleanup_temp_file(file)

    def _put_part_presigned(
        self, key: str, multipart_id: str, part_number: int, file: IO[bytes], size: int
    ) -> None:
        service = self.store.service
        if not isinstance(service, _PresigningS3API):
            raise TusError("s3store: failed to cast S3 service for presigning")

        url = service.presign_upload_part(
            self.store.bucket, key, multipart_id, part_number, _PRESIGN_EXPIRY_SECONDS
        )
        # An explicit length keeps the request from using chunked encoding,
        # which S3 does not accept.
        request = urllib.request.Request(
            url, data=file, method="PUT", headers={"Content-Length": str(size)}
        )
        try:
            with urllib.request.urlopen(request) as response:
                status, body = response.status, response.read()
        except urllib.error.HTTPError as exc:
            status, body = exc.code, exc.read()
        if status != 200:
            raise TusError(
                f"s3store: unexpected response code {status} for presigned upload: "
                f"{body.decode('utf-8', 'replace')}"
            )

    # -- reading ----------------------------------------------------------

    def get_reader(self) -> BinaryIO:
        """Open the content of a finished upload."""
        store = self.store
        object_id, multipart_id = split_ids(self.id)
        key = store.key_with_prefix(object_id)

        try:
            return store.service.get_object(store.bucket, key).body
        except S3Error as exc:
            if exc.code != "NoSuchKey":
                raise

        # Tell an unfinished upload apart from one that never existed.
        try:
            store.service.list_parts(store.bucket, key, multipart_id, max_parts=0)
        except S3Error as exc:
            if exc.code == "NoSuchUpload":
                raise NotFoundError() from None
            raise
        raise HTTPError("cannot stream non-finished upload", 400)

    # -- termination and completion ---------------------------------------

    def terminate(self) -> None:
        """Abort the multipart upload and delete all objects of the upload."""
        store = self.store
        service = store.service
        object_id, multipart_id = split_ids(self.id)

        def abort() -> list[Exception]:
            try:
                service.abort_multipart_upload(
                    store.bucket, store.key_with_prefix(object_id), multipart_id
                )
            except Exception as exc:
                if not is_s3_error(exc, "NoSuchUpload"):
                    return [exc]
            return []

        def delete() -> list[Exception]:
            keys = [
                store.key_with_prefix(object_id),
                store.metadata_key_with_prefix(object_id + ".part"),
                store.metadata_key_with_prefix(object_id + ".info"),
            ]
            try:
                failures = service.delete_objects(store.bucket, keys, quiet=True)
            except Exception as exc:
                return [exc]
            return [
                TusError(
                    f"AWS S3 Error ({failure.code}) for object {failure.key}: "
                    f"{failure.message}"
                )
                for failure in failures
                if failure.code != "NoSuchKey"
            ]

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcomes = [pool.submit(abort), pool.submit(delete)]
            errors = [error for outcome in outcomes for error in outcome.result()]

        if errors:
            raise MultiError(errors)

    def finish_upload(self) -> None:
        """Complete the multipart upload from all parts uploaded so far."""
        store = self.store
        object_id, multipart_id = split_ids(self.id)
        key = store.key_with_prefix(object_id)

        parts = store.list_all_parts(self.id)
        if not parts:
            # Completing needs at least one part, so an empty upload gets an
            # empty one.
            etag = store.service.upload_part(
                store.bucket, key, multipart_id, 1, io.BytesIO(b"")
            )
            parts = [Part(etag=etag, part_number=1)]

        completed = [CompletedPart(part.etag, part.part_number) for part in parts]
        store.service.complete_multipart_upload(store.bucket, key, multipart_id, completed)

    # -- concatenation ----------------------------------------------------

    def concat_uploads(self, partial_uploads: Sequence[S3Upload]) -> None:
        """Build this upload from the content of finished partial uploads."""
        has_small_part = any(
            partial.get_info().size < self.store.min_part_size
            for partial in partial_uploads
        )
        # Multipart copies need every part to reach the minimum part size;
        # otherwise the data is joined locally.
        if has_small_part:
            self._concat_using_download(partial_uploads)
        else:
            self._concat_using_multipart(partial_uploads)

    def _concat_using_download(self, partial_uploads: Sequence[S3Upload]) -> None:
        store = self.store
        object_id, multipart_id = split_ids(self.id)

        file = tempfile.NamedTemporaryFile(
            mode="w+b",
            prefix=_CONCAT_TEMP_PREFIX,
            dir=store.temporary_directory or None,
            delete=False,
        )
        try:
            for partial in partial_uploads:
                partial_id, _ = split_ids(partial.id)
                result = store.service.get_object(
                    store.bucket, store.key_with_prefix(partial_id)
                )
                try:
                    shutil.copyfileobj(result.body, file)
                finally:
                    result.body.close()
            file.flush()
            file.seek(0)
            store.service.put_object(store.bucket, store.key_with_prefix(object_id), file)
        finally:
            cleanup_temp_file(file)

        # The multipart upload is no longer needed; its outcome does not
        # change the result, so it is dropped in the background.
        threading.Thread(
            target=self._abort_quietly, args=(object_id, multipart_id), daemon=True
        ).start()

    def _abort_quietly(self, object_id: str, multipart_id: str) -> None:
        store = self.store
        try:
            store.service.abort_multipart_upload(
                store.bucket, store.key_with_prefix(object_id), multipart_id
            )
        except Exception:
            pass

    def _concat_using_multipart(self, partial_uploads: Sequence[S3Upload]) -> None:
        store = self.store
        object_id, multipart_id = split_ids(self.id)
        key = store.key_with_prefix(object_id)

        def copy(part_number: int, partial: S3Upload) -> Exception | None:
            partial_id, _ = split_ids(partial.id)
            try:
                store.service.upload_part_copy(
                    store.bucket,
                    key,
                    multipart_id,
                    part_number,
                    f"{store.bucket}/{store.key_with_prefix(partial_id)}",
                )
            except Exception as exc:
                return exc
            return None

        with ThreadPoolExecutor(max_workers=max(1, len(partial_uploads))) as pool:
            outcomes = list(
                pool.map(copy, range(1, len(partial_uploads) + 1), partial_uploads)
            )
        errors = [error for error in outcomes if error is not None]
        if errors:
            raise MultiError(errors)

        self.finish_upload()

    # -- deferred length --------------------------------------------------

    def declare_length(self, length: int) -> None:
        """Set the final size of an upload whose size was deferred."""
        info = self.get_info()
        info.size = length
        info.size_is_deferred = False
        self._write_info(info)


__all__ = ["S3Store", "S3Upload"]