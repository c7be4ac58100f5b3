"""Tests for text and binary record streams."""

import io

import pytest
import numpy as np
from numpy.testing import assert_allclose

from sgrid.config.validation import FormatCorruptionError
from sgrid.core.io import (
    BinaryRecordReader,
    BinaryRecordWriter,
    TextRecordReader,
    TextRecordWriter,
    read_flag,
    read_index_set,
    read_matrix,
    write_flag,
    write_index_set,
    write_matrix,
)
from sgrid.core.multi_index import MultiIndexSet


def _text_reader(writer_calls):
    stream = io.StringIO()
    writer = TextRecordWriter(stream)
    writer_calls(writer)
    return TextRecordReader(stream.getvalue().splitlines())


def _binary_reader(writer_calls):
    stream = io.BytesIO()
    writer_calls(BinaryRecordWriter(stream))
    return BinaryRecordReader(io.BytesIO(stream.getvalue()))


@pytest.fixture(params=["text", "binary"])
def make_reader(request):
    """Reader factory for both record formats."""
    return _text_reader if request.param == "text" else _binary_reader


class TestRecords:
    """Tests shared by both record formats."""

    def test_payload_helpers(self, make_reader):
        """Test index sets, matrices and flags survive a write and read."""
        index_set = MultiIndexSet.from_tuples(2, [(0, 0), (1, 0), (0, 3)])
        matrix = np.array([[1.0 / 3.0, -2.5e-300], [np.pi, 0.0]])

        def calls(writer):
            write_index_set(writer, index_set)
            write_matrix(writer, matrix)
            write_flag(writer, True)
            writer.int(-7)

        reader = make_reader(calls)
        assert read_index_set(reader, 2) == index_set
        assert_allclose(read_matrix(reader, 2, 2), matrix, rtol=0, atol=0)
        assert read_flag(reader) is True
        assert reader.int() == -7

    def test_empty_index_set(self, make_reader):
        """Test an empty index set writes only its size."""
        reader = make_reader(lambda writer: write_index_set(writer, MultiIndexSet(3)))
        assert read_index_set(reader, 3).empty()

    def test_end_of_data(self, make_reader):
        """Test reading past the end raises FormatCorruptionError."""
        reader = make_reader(lambda writer: writer.int(1))
        reader.int()
        with pytest.raises(FormatCorruptionError):
            reader.int()

    def test_bad_flag(self, make_reader):
        """Test flags other than 0 and 1 are corruption."""
        reader = make_reader(lambda writer: writer.int(2))
        with pytest.raises(FormatCorruptionError):
            read_flag(reader)

    def test_negative_index_entry(self, make_reader):
        """Test negative multi-index entries are corruption."""

        def calls(writer):
            writer.int(1)
            writer.ints([0, -1])

        with pytest.raises(FormatCorruptionError):
            read_index_set(make_reader(calls), 2)


class TestTextRecords:
    """Tests specific to text records."""

    def test_non_numeric_token(self):
        """Test a word where a number is expected is corruption."""
        reader = TextRecordReader(["12 abc"])
        assert reader.int() == 12
        with pytest.raises(FormatCorruptionError, match="abc"):
            reader.int()

    def test_line_after_partial_record(self):
        """Test a line read with unread values pending is corruption."""
        reader = TextRecordReader(["1 2", "next"])
        reader.int()
        with pytest.raises(FormatCorruptionError):
            reader.line()

    def test_blank_lines_skipped(self):
        """Test blank lines between records are ignored."""
        reader = TextRecordReader(["", "  ", "3.5", "", "word"])
        assert reader.float() == 3.5
        assert reader.line() == "word"

    def test_full_precision(self):
        """Test doubles are printed with round trip precision."""
        stream = io.StringIO()
        TextRecordWriter(stream).float(0.1 + 0.2)
        assert float(stream.getvalue()) == 0.1 + 0.2


class TestBinaryRecords:
    """Tests specific to binary records."""

    def test_little_endian_layout(self):
        """Test ints are 4 byte and floats 8 byte little endian."""
        stream = io.BytesIO()
        writer = BinaryRecordWriter(stream)
        writer.int(1)
        writer.float(1.0)
        assert stream.getvalue() == b"\x01\x00\x00\x00" + np.float64(1.0).astype("<f8").tobytes()

    def test_truncated_float(self):
        """Test a truncated double is corruption."""
        reader = BinaryRecordReader(io.BytesIO(b"\x00\x00\x00"))
        with pytest.raises(FormatCorruptionError):
            reader.float()

    def test_negative_length(self):
        """Test negative record lengths are corruption."""
        reader = BinaryRecordReader(io.BytesIO(b""))
        with pytest.raises(FormatCorruptionError):
            reader.floats(-1)
