# tusstore

Storage pieces for servers that accept resumable uploads following the tus
protocol:

- `tusstore.s3store.S3Store`, a data store that keeps each upload as an S3
  multipart upload. A JSON `.info` object describes the upload. A `.part`
  object holds data that is still too small to become a part.
- `tusstore.memorylocker.MemoryLocker`, an in-memory locker that stops two
  requests from working on the same upload at once.

## Installation

```
pip install .
```

The package has no runtime dependencies. To run the tests:

```
pip install ".[test]"
pytest
```

## Talking to S3

`S3Store` does not include an S3 client. It calls an object that implements
the `tusstore.s3api.S3API` protocol, which has these methods:

- `put_object`
- `list_parts`
- `upload_part`
- `get_object`
- `create_multipart_upload`
- `complete_multipart_upload`
- `upload_part_copy`
- `abort_multipart_upload`
- `delete_object`
- `delete_objects`

Wrap whichever client you use in a small adapter. When the service reports a
failure, raise `tusstore.s3api.S3Error` with the S3 error code, for example
`"NoSuchKey"` or `"NoSuchUpload"`. The store uses that code to tell a missing
object from a real failure.

The data types used by the protocol are also in `tusstore.s3api`:

- `Part`
- `CompletedPart`
- `ListPartsResult`
- `GetObjectResult`
- `DeleteObjectError`

Two helpers sit in the same module:

- `split_ids(upload_id)` splits an id of the form
  `"<object id>+<multipart id>"` into its two halves.
- `is_s3_error(error, code)` tells whether an error is an `S3Error` with the
  given code.

## Creating and writing an upload

```python
from tusstore.fileinfo import FileInfo
from tusstore.s3store import S3Store

store = S3Store("my-bucket", service)       # service implements S3API
store.object_prefix = "uploads"

upload = store.new_upload(FileInfo(size=1024, meta_data={"filename": "a.txt"}))
with open("a.txt", "rb") as src:
    written = upload.write_chunk(0, src)

info = upload.get_info()
if info.offset == info.size:
    upload.finish_upload()
```

If `FileInfo.id` is empty, `new_upload` picks a random object id. The id of
the upload it returns has the form `"<object id>+<multipart id>"`.

Metadata values are stored on the multipart upload as well. There, every
character that is not allowed in an HTTP header value is replaced by `?`. The
`.info` object keeps the values unchanged.

Incoming data is written to temporary files on disk before it is uploaded.
Each part is `calc_optimal_part_size(size)` bytes, and the last one may be
shorter. A part smaller than `min_part_size` that does not finish the upload
is stored as the `.part` object instead of being uploaded as a part. The next
`write_chunk` call puts it in front of the new data.

Other operations:

- `store.get_upload(upload_id)` returns a handle for an existing upload.
  Nothing is fetched until it is used.
- `upload.get_info()` fetches the `.info` object once and caches it. The
  offset is worked out from the parts listed so far plus any `.part` object.
- `upload.get_reader()` opens a finished upload for reading. It raises
  `tusstore.errors.HTTPError` with status 400 while the upload is unfinished,
  and `tusstore.errors.NotFoundError` when the upload does not exist.
- `upload.terminate()` aborts the multipart upload and deletes the upload's
  objects.
- `upload.declare_length(length)` sets the size of an upload whose size was
  deferred.
- `upload.concat_uploads([...])` builds this upload from finished partial
  uploads:
  - When every partial upload reaches `min_part_size`, it uses server-side
    part copies.
  - Otherwise it downloads the partial uploads and joins them on disk first.

`store.as_terminatable_upload`, `store.as_length_declarable_upload` and
`store.as_concatable_upload` check that an upload belongs to this kind of
store and return it.

When several concurrent S3 calls fail, their errors are collected into a
`tusstore.errors.MultiError`. All errors raised by the package derive from
`tusstore.errors.TusError`.

## Settings

`S3Store` is a dataclass. These fields have the following defaults:

| Field | Default |
| --- | --- |
| `object_prefix` | `""` |
| `metadata_object_prefix` | `""` (falls back to `object_prefix`) |
| `min_part_size` | 5 MiB |
| `preferred_part_size` | 50 MiB |
| `max_part_size` | 5 GiB |
| `max_multipart_parts` | 10000 |
| `max_object_size` | 5 TiB |
| `max_buffered_parts` | 20 (parts held on disk while one is uploading) |
| `temporary_directory` | `""` (the system default) |
| `disable_content_hashes` | `False` |

When `disable_content_hashes` is set, parts are sent with a plain HTTP `PUT`
to a presigned URL. The service object must then also provide
`presign_upload_part(bucket, key, upload_id, part_number, expires_in)`, which
returns that URL.

## Locking

```python
from tusstore.errors import FileLockedError
from tusstore.memorylocker import MemoryLocker

locker = MemoryLocker()
lock = locker.new_lock("upload-id")
lock.lock()                 # raises FileLockedError if already held
try:
    ...
finally:
    lock.unlock()           # unlocking twice is harmless

with locker.new_lock("other-upload"):
    ...                     # locked inside the block
```

Locks live only in this process and are gone when it exits.

## What this package does not do

- It has no HTTP server and no tus protocol handler. You call the stores and
  locks from your own request handling.
- It has no S3 client of its own. See "Talking to S3" above.
- It has no metrics and no command-line program.