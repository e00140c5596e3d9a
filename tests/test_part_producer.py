import io
import os
import tempfile
import threading

from tusstore.part_producer import PartProducer, cleanup_temp_file


class InfiniteZeroReader:
    def read(self, size=-1):
        return b"\x00"


class ErrorReader:
    def read(self, size=-1):
        raise OSError("error from ErrorReader")


def _start(producer, part_size):
    thread = threading.Thread(target=producer.produce, args=(part_size,), daemon=True)
    thread.start()
    return thread


def test_consumes_entire_reader_without_error(tmp_path):
    producer = PartProducer(io.BytesIO(b"test"), temporary_directory=tmp_path)
    thread = _start(producer, 1)

    chunks = []
    for file in producer:
        chunks.append(file.read())
        cleanup_temp_file(file)
    thread.join(timeout=2)

    assert not thread.is_alive()
    assert chunks == [b"t", b"e", b"s", b"t"]
    assert producer.error is None
    assert list(tmp_path.iterdir()) == []


def test_parts_have_requested_size_with_short_last_part(tmp_path):
    producer = PartProducer(io.BytesIO(b"1234567890"), temporary_directory=tmp_path)
    thread = _start(producer, 4)

    chunks = []
    for file in producer:
        chunks.append(file.read())
        cleanup_temp_file(file)
    thread.join(timeout=2)

    assert chunks == [b"1234", b"5678", b"90"]
    assert producer.error is None


def test_exits_when_done_is_set(tmp_path):
    producer = PartProducer(InfiniteZeroReader(), temporary_directory=tmp_path)
    thread = _start(producer, 10)
    producer.done.set()
    thread.join(timeout=2)
    assert not thread.is_alive()

    remaining = list(producer)
    for file in remaining:
        cleanup_temp_file(file)
    assert len(remaining) <= 1
    assert producer.error is None
    assert list(tmp_path.iterdir()) == []


def test_exits_when_done_is_set_before_any_part(tmp_path):
    producer = PartProducer(InfiniteZeroReader(), temporary_directory=tmp_path)
    producer.done.set()
    thread = _start(producer, 10)
    thread.join(timeout=2)
    assert not thread.is_alive()

    assert list(producer) == []
    assert list(tmp_path.iterdir()) == []


def test_exits_when_unable_to_read(tmp_path):
    producer = PartProducer(ErrorReader(), temporary_directory=tmp_path)
    thread = _start(producer, 10)
    thread.join(timeout=2)
    assert not thread.is_alive()

    assert list(producer) == []
    assert isinstance(producer.error, OSError)
    assert str(producer.error) == "error from ErrorReader"
    assert list(tmp_path.iterdir()) == []


def test_breaking_out_of_iteration_cleans_buffered_parts(tmp_path):
    producer = PartProducer(
        InfiniteZeroReader(), temporary_directory=tmp_path, max_buffered=3
    )
    thread = _start(producer, 10)

    for file in producer:
        first = file.read()
        cleanup_temp_file(file)
        break
    thread.join(timeout=2)

    assert first == b"\x00" * 10
    assert not thread.is_alive()
    assert list(tmp_path.iterdir()) == []


def test_temp_files_use_prefix(tmp_path):
    producer = PartProducer(io.BytesIO(b"abc"), temporary_directory=tmp_path)
    thread = _start(producer, 10)
    names = []
    for file in producer:
        names.append(os.path.basename(file.name))
        cleanup_temp_file(file)
    thread.join(timeout=2)
    assert len(names) == 1
    assert names[0].startswith("tusd-s3-tmp-")


def test_cleanup_temp_file_removes_and_closes(tmp_path):
    file = tempfile.NamedTemporaryFile(dir=tmp_path, delete=False)
    file.write(b"data")
    path = file.name
    cleanup_temp_file(file)
    assert file.closed
    assert not os.path.exists(path)
    cleanup_temp_file(file)
    assert list(tmp_path.iterdir()) == []