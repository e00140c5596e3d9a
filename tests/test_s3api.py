from tusstore.s3api import (
    CompletedPart,
    DeleteObjectError,
    ListPartsResult,
    Part,
    S3Error,
    is_s3_error,
    split_ids,
)


def test_split_ids_separates_object_and_multipart_id():
    assert split_ids("uploadId+multipartId") == ("uploadId", "multipartId")


def test_split_ids_without_plus_yields_empty_parts():
    assert split_ids("uploadId") == ("", "")


def test_split_ids_splits_at_first_plus():
    assert split_ids("aaa+AAA+more") == ("aaa", "AAA+more")


def test_is_s3_error_matches_code():
    error = S3Error("NoSuchKey", "The specified key does not exist.")
    assert is_s3_error(error, "NoSuchKey") is True
    assert is_s3_error(error, "NoSuchUpload") is False


def test_is_s3_error_rejects_other_exceptions():
    assert is_s3_error(ValueError("NoSuchKey"), "NoSuchKey") is False
    assert is_s3_error(None, "NoSuchKey") is False


def test_s3_error_keeps_code_and_message():
    error = S3Error("AccessDenied", "Access Denied.")
    assert error.code == "AccessDenied"
    assert error.message == "Access Denied."
    assert "Access Denied." in str(error)


def test_list_parts_result_defaults_to_last_page():
    result = ListPartsResult(parts=[Part(size=100), Part(size=200)])
    assert result.is_truncated is False
    assert result.next_part_number_marker is None
    assert sum(part.size for part in result.parts) == 300


def test_completed_part_built_from_part():
    part = Part(size=100, etag="foo", part_number=1)
    completed = CompletedPart(etag=part.etag, part_number=part.part_number)
    assert completed == CompletedPart("foo", 1)


def test_delete_object_error_fields():
    error = DeleteObjectError(code="hello", key="uploadId", message="it's me.")
    assert (error.code, error.key, error.message) == ("hello", "uploadId", "it's me.")