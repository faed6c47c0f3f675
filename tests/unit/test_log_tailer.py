"""Tests for log tailer."""

import tempfile
from pathlib import Path

import pytest

from divtrack.parser.log_tailer import LogTailer


@pytest.fixture
def temp_log():
    """Create a temporary log file for testing."""
    with tempfile.NamedTemporaryFile(mode="wb", suffix=".txt", delete=False) as f:
        f.write(b"Line 1\n")
        f.write(b"Line 2\n")
        f.write(b"Line 3\n")
        temp_path = Path(f.name)
    yield temp_path
    temp_path.unlink(missing_ok=True)


def append(path: Path, data: bytes) -> None:
    with open(path, "ab") as f:
        f.write(data)


class TestLogTailer:
    """Tests for LogTailer."""

    def test_read_all_lines(self, temp_log):
        tailer = LogTailer(temp_log)
        lines = list(tailer.read_all_lines())
        assert lines == ["Line 1", "Line 2", "Line 3"]

    def test_read_new_lines_from_position(self, temp_log):
        tailer = LogTailer(temp_log)
        list(tailer.read_new_lines())

        append(temp_log, b"Line 4\nLine 5\n")

        assert list(tailer.read_new_lines()) == ["Line 4", "Line 5"]

    def test_no_new_lines_returns_nothing(self, temp_log):
        tailer = LogTailer(temp_log)
        list(tailer.read_new_lines())
        assert list(tailer.read_new_lines()) == []

    def test_handles_partial_line(self, temp_log):
        tailer = LogTailer(temp_log)
        list(tailer.read_new_lines())

        append(temp_log, b"Partial")
        assert list(tailer.read_new_lines()) == []

        append(temp_log, b" line\n")
        assert list(tailer.read_new_lines()) == ["Partial line"]

    def test_position_excludes_partial_line(self, temp_log):
        tailer = LogTailer(temp_log)
        list(tailer.read_new_lines())
        complete = tailer.position

        append(temp_log, b"half")
        list(tailer.read_new_lines())

        assert tailer.position == complete

    def test_strips_crlf(self, tmp_path):
        path = tmp_path / "Client.txt"
        path.write_bytes(b"first\r\nsecond\r\n")

        tailer = LogTailer(path)
        assert list(tailer.read_new_lines()) == ["first", "second"]

    def test_invalid_utf8_is_replaced(self, tmp_path):
        path = tmp_path / "Client.txt"
        path.write_bytes(b"bad \xff byte\n")

        tailer = LogTailer(path)
        lines = list(tailer.read_new_lines())
        assert len(lines) == 1
        assert lines[0].startswith("bad ")
        assert "�" in lines[0]

    def test_multibyte_character_split_across_reads(self, tmp_path):
        path = tmp_path / "Client.txt"
        encoded = "Maître\n".encode("utf-8")
        cut = encoded.index("î".encode("utf-8")) + 1
        path.write_bytes(encoded[:cut])

        tailer = LogTailer(path)
        assert list(tailer.read_new_lines()) == []

        append(path, encoded[cut:])
        assert list(tailer.read_new_lines()) == ["Maître"]

    def test_rotation_restarts_without_reemitting(self, temp_log):
        tailer = LogTailer(temp_log)
        assert len(list(tailer.read_new_lines())) == 3

        # Truncate and write fewer bytes than before
        temp_log.write_bytes(b"New\n")

        assert list(tailer.read_new_lines()) == ["New"]
        assert list(tailer.read_new_lines()) == []

    def test_seek_to_end(self, temp_log):
        tailer = LogTailer(temp_log)
        tailer.seek_to_end()

        assert list(tailer.read_new_lines()) == []

        append(temp_log, b"Line 4\n")
        assert list(tailer.read_new_lines()) == ["Line 4"]

    def test_set_position_resumes(self, temp_log):
        tailer = LogTailer(temp_log)
        tailer.set_position(7, temp_log.stat().st_size)  # after "Line 1\n"

        assert list(tailer.read_new_lines()) == ["Line 2", "Line 3"]

    def test_set_position_file_shrank(self, temp_log):
        tailer = LogTailer(temp_log)
        size = temp_log.stat().st_size
        tailer.set_position(size, size + 100)

        assert tailer.position == 0
        assert list(tailer.read_new_lines()) == ["Line 1", "Line 2", "Line 3"]

    def test_set_position_past_end_restarts(self, temp_log):
        tailer = LogTailer(temp_log)
        size = temp_log.stat().st_size
        tailer.set_position(size + 50, size)

        assert tailer.position == 0

    def test_set_position_negative_restarts(self, temp_log):
        tailer = LogTailer(temp_log)
        tailer.set_position(-5, temp_log.stat().st_size)

        assert tailer.position == 0

    def test_missing_file(self, tmp_path):
        tailer = LogTailer(tmp_path / "missing.txt")

        assert not tailer.file_exists()
        assert list(tailer.read_new_lines()) == []
        assert tailer.position == 0

    def test_file_appears_later(self, tmp_path):
        path = tmp_path / "Client.txt"
        tailer = LogTailer(path)
        assert list(tailer.read_new_lines()) == []

        path.write_bytes(b"hello\n")
        assert list(tailer.read_new_lines()) == ["hello"]

    def test_reset(self, temp_log):
        tailer = LogTailer(temp_log)
        list(tailer.read_new_lines())
        tailer.reset()

        assert tailer.position == 0
        assert len(list(tailer.read_new_lines())) == 3
