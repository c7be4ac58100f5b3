"""Text and binary record streams for grid files.

Writers and readers share one interface (``int``, ``ints``, ``float``,
``floats``) so every engine serializes its payload once for both formats.
Text records put each call on its own line and print doubles with full
round-trip precision; binary records use little endian int32 and float64.
Every reader failure is reported as FormatCorruptionError.

Import Policy:
    from sgrid.core.io import TextRecordWriter, TextRecordReader, BinaryRecordWriter, BinaryRecordReader

DO NOT use: from sgrid.core.io import *
"""

from typing import IO, Iterable, List, Optional

import numpy as np

from sgrid.config.validation import FormatCorruptionError
from sgrid.core.multi_index import MultiIndexSet

_INT = np.dtype("<i4")
_FLOAT = np.dtype("<f8")


class TextRecordWriter:
    binary = False

    def __init__(self, stream: IO[str]):
        self.stream = stream

    def line(self, text: str) -> None:
        self.stream.write(text + "\n")

    def int(self, value: int) -> None:
        self.line(str(int(value)))

    def float(self, value: float) -> None:
        self.line(repr(float(value)))

    def ints(self, values: Iterable[int]) -> None:
        values = [str(int(v)) for v in np.asarray(values).ravel()]
        if values:
            self.line(" ".join(values))

    def floats(self, values: Iterable[float]) -> None:
        values = [repr(float(v)) for v in np.asarray(values, dtype=float).ravel()]
        if values:
            self.line(" ".join(values))


class BinaryRecordWriter:
    binary = True

    def __init__(self, stream: IO[bytes]):
        self.stream = stream

    def tag(self, value: bytes) -> None:
        self.stream.write(value)

    def int(self, value: int) -> None:
        self.stream.write(np.array([value], dtype=_INT).tobytes())

    def float(self, value: float) -> None:
        self.stream.write(np.array([value], dtype=_FLOAT).tobytes())

    def ints(self, values: Iterable[int]) -> None:
        self.stream.write(np.asarray(values, dtype=_INT).ravel().tobytes())

    def floats(self, values: Iterable[float]) -> None:
        self.stream.write(np.asarray(values, dtype=_FLOAT).ravel().tobytes())


class TextRecordReader:
    """Token reader over the lines of a text grid file."""

    binary = False

    def __init__(self, lines: Iterable[str]):
        self._lines = iter(lines)
        self._tokens: List[str] = []

    def _next_line(self) -> Optional[str]:
        for raw in self._lines:
            text = raw.strip()
            if text:
                return text
        return None

    def line(self) -> str:
        """Next non-blank line; fails if a numeric record was only partly read."""
        if self._tokens:
            raise FormatCorruptionError(f"unexpected trailing values: {' '.join(self._tokens[:4])}")
        text = self._next_line()
        if text is None:
            raise FormatCorruptionError("unexpected end of file")
        return text

    def _token(self) -> str:
        while not self._tokens:
            text = self._next_line()
            if text is None:
                raise FormatCorruptionError("unexpected end of file")
            self._tokens = text.split()
        return self._tokens.pop(0)

    def int(self) -> int:
        token = self._token()
        try:
            return int(token)
        except ValueError:
            raise FormatCorruptionError(f"expected an integer, found '{token}'") from None

    def float(self) -> float:
        token = self._token()
        try:
            return float(token)
        except ValueError:
            raise FormatCorruptionError(f"expected a number, found '{token}'") from None

    def ints(self, count: int) -> np.ndarray:
        return np.array([self.int() for _ in range(count)], dtype=np.int64)

    def floats(self, count: int) -> np.ndarray:
        return np.array([self.float() for _ in range(count)], dtype=float)


class BinaryRecordReader:
    binary = True

    def __init__(self, stream: IO[bytes]):
        self.stream = stream

    def _read(self, size: int) -> bytes:
        data = self.stream.read(size)
        if data is None or len(data) != size:
            raise FormatCorruptionError("unexpected end of file")
        return data

    def tag(self) -> bytes:
        return self._read(1)

    def int(self) -> int:
        return int(np.frombuffer(self._read(_INT.itemsize), dtype=_INT)[0])

    def float(self) -> float:
        return float(np.frombuffer(self._read(_FLOAT.itemsize), dtype=_FLOAT)[0])

    def ints(self, count: int) -> np.ndarray:
        if count < 0:
            raise FormatCorruptionError(f"negative record length {count}")
        return np.frombuffer(self._read(count * _INT.itemsize), dtype=_INT).astype(np.int64)

    def floats(self, count: int) -> np.ndarray:
        if count < 0:
            raise FormatCorruptionError(f"negative record length {count}")
        return np.frombuffer(self._read(count * _FLOAT.itemsize), dtype=_FLOAT).copy()


# =============================================================================
# Shared payload helpers
# =============================================================================


def write_index_set(writer, index_set: MultiIndexSet) -> None:
    writer.int(len(index_set))
    writer.ints(index_set.indexes.ravel())


def read_index_set(reader, num_dimensions: int) -> MultiIndexSet:
    count = reader.int()
    if count < 0:
        raise FormatCorruptionError(f"negative index set size {count}")
    data = reader.ints(count * num_dimensions)
    if np.any(data < 0):
        raise FormatCorruptionError("negative entry in an index set")
    return MultiIndexSet(num_dimensions, data.reshape(count, num_dimensions))


def write_matrix(writer, matrix: np.ndarray) -> None:
    writer.floats(np.asarray(matrix, dtype=float).ravel())


def read_matrix(reader, rows: int, cols: int) -> np.ndarray:
    return reader.floats(rows * cols).reshape(rows, cols)


def write_flag(writer, flag: bool) -> None:
    writer.int(1 if flag else 0)


def read_flag(reader) -> bool:
    value = reader.int()
    if value not in (0, 1):
        raise FormatCorruptionError(f"expected a 0/1 flag, found {value}")
    return value == 1
