"""Tests for last-N replay."""

import pytest

from conftest import write_log
from vrclog.errors import ReplayLimitExceededError
from vrclog.parser.replay import CHUNK_SIZE, read_last_lines


@pytest.fixture
def path(tmp_path):
    return tmp_path / "output_log_test.txt"


class TestReadLastLines:
    """Tests for read_last_lines."""

    def test_empty_file(self, path):
        path.write_bytes(b"")
        assert read_last_lines(path, 10) == []

    def test_zero_n(self, path):
        write_log(path, ["a", "b"])
        assert read_last_lines(path, 0) == []

    def test_fewer_lines_than_n(self, path):
        write_log(path, ["one", "two", "three"])
        assert read_last_lines(path, 10) == ["one", "two", "three"]

    def test_last_n_in_order(self, path):
        write_log(path, [f"line {i}" for i in range(100)])
        assert read_last_lines(path, 3) == ["line 97", "line 98", "line 99"]

    def test_no_trailing_newline(self, path):
        write_log(path, ["first", "last"], trailing=False)
        assert read_last_lines(path, 1) == ["last"]
        assert read_last_lines(path, 5) == ["first", "last"]

    def test_single_line_without_newline(self, path):
        path.write_bytes(b"only line")
        assert read_last_lines(path, 3) == ["only line"]

    def test_skips_empty_lines(self, path):
        write_log(path, ["a", "", "b", "", "", "c", ""])
        assert read_last_lines(path, 2) == ["b", "c"]
        assert read_last_lines(path, 10) == ["a", "b", "c"]

    def test_crlf(self, path):
        write_log(path, ["a", "b", "c"], newline="\r\n")
        assert read_last_lines(path, 2) == ["b", "c"]

    def test_blank_crlf_lines_skipped(self, path):
        path.write_bytes(b"a\r\n\r\n\r\nb\r\n")
        assert read_last_lines(path, 5) == ["a", "b"]

    def test_lines_crossing_chunk_boundaries(self, path):
        # Odd line lengths so boundaries fall mid-line
        lines = [f"{i:05d}-" + "x" * (i % 97 + 50) for i in range(400)]
        write_log(path, lines)
        assert path.stat().st_size > 4 * CHUNK_SIZE
        for n in (1, 7, 53, 150, 399, 400, 1000):
            assert read_last_lines(path, n) == lines[-n:]

    def test_line_longer_than_chunk(self, path):
        long_line = "L" * (CHUNK_SIZE * 3 + 17)
        write_log(path, ["head", long_line, "tail"])
        assert read_last_lines(path, 2) == [long_line, "tail"]
        assert read_last_lines(path, 3) == ["head", long_line, "tail"]

    def test_utf8_across_chunks(self, path):
        lines = ["日本語のプレイヤー名" * 50 for _ in range(20)]
        write_log(path, lines)
        assert read_last_lines(path, 20) == lines


class TestReplayLimits:
    """Tests for the byte budgets."""

    def test_total_bytes_exceeded(self, path):
        write_log(path, ["x" * 100 for _ in range(200)])
        with pytest.raises(ReplayLimitExceededError):
            read_last_lines(path, 150, max_bytes=CHUNK_SIZE)

    def test_total_bytes_within_budget(self, path):
        write_log(path, ["x" * 100 for _ in range(200)])
        assert len(read_last_lines(path, 10, max_bytes=CHUNK_SIZE)) == 10

    def test_line_exactly_at_limit_accepted(self, path):
        write_log(path, ["a" * 50, "b" * 64])
        assert read_last_lines(path, 1, max_line_bytes=64) == ["b" * 64]

    def test_line_one_byte_over_rejected(self, path):
        write_log(path, ["a" * 50, "b" * 65])
        with pytest.raises(ReplayLimitExceededError):
            read_last_lines(path, 1, max_line_bytes=64)

    def test_first_line_over_limit_rejected(self, path):
        write_log(path, ["b" * 65, "short"])
        with pytest.raises(ReplayLimitExceededError):
            read_last_lines(path, 2, max_line_bytes=64)

    def test_long_line_without_newline_rejected(self, path):
        path.write_bytes(b"z" * (CHUNK_SIZE * 2))
        with pytest.raises(ReplayLimitExceededError):
            read_last_lines(path, 1, max_line_bytes=1024)

    def test_long_line_outside_window_ignored(self, path):
        write_log(path, ["x" * 10000, "recent 1", "recent 2"])
        assert read_last_lines(path, 2, max_line_bytes=64) == ["recent 1", "recent 2"]

    def test_zero_limits_mean_unlimited(self, path):
        lines = ["y" * 5000 for _ in range(10)]
        write_log(path, lines)
        assert read_last_lines(path, 10, max_bytes=0, max_line_bytes=0) == lines

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            read_last_lines(tmp_path / "missing.txt", 5)
