"""Versioned text and binary grid files.

Text layout::

    SGRID 3.1
    WARNING: do not edit this manually
    <family tag>
    <engine payload>
    custom | canonical            (+ one "a b" line per dimension)
    asinconformal | nonconformal  (+ truncation orders)
    limited | unlimited           (+ level limits)
    constructing | static         (+ construction payload)
    SGRID end

Binary layout: magic ``SGB1``, one family byte, the engine payload, then
one byte per block (``y``/``n``, ``a``/``n``, ``y``/``n``, ``c``/``s``) and
a final ``e``. Text files of version 2.x end after the domain block and 3.0
files after the level limits; any file may stop early after a block.

Reading never touches a facade: it produces a GridRecord that the caller
adopts only when parsing succeeded.

Import Policy:
    from sgrid.grid.persistence import GridRecord, read_grid, write_grid
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Optional, Tuple, Union

import numpy as np

from sgrid.config.defaults import (
    BINARY_MAGIC,
    FORMAT_CONFORMAL_SINCE,
    FORMAT_CONSTRUCTION_SINCE,
    MIN_SUPPORTED_MAJOR,
    TEXT_END_MARKER,
    TEXT_MAGIC,
    TEXT_WARNING_LINE,
    VERSION_MAJOR,
    VERSION_MINOR,
)
from sgrid.config.enums import GridFamily
from sgrid.config.validation import FormatCorruptionError, InvalidArgumentError
from sgrid.core.io import BinaryRecordReader, BinaryRecordWriter, TextRecordReader, TextRecordWriter
from sgrid.core.transforms import ConformalAsin, DomainTransform
from sgrid.engines import ENGINES, BaseGrid

logger = logging.getLogger(__name__)


@dataclass
class GridRecord:
    """Everything a grid file holds."""

    engine: Optional[BaseGrid] = None
    domain: Optional[DomainTransform] = None
    conformal: Optional[ConformalAsin] = None
    level_limits: Optional[np.ndarray] = None

    @property
    def family(self) -> GridFamily:
        return GridFamily.EMPTY if self.engine is None else self.engine.family

    @property
    def num_dimensions(self) -> int:
        return 0 if self.engine is None else self.engine.num_dimensions


# =============================================================================
# Writing
# =============================================================================


def write_text(stream: IO[str], record: GridRecord) -> None:
    writer = TextRecordWriter(stream)
    writer.line(f"{TEXT_MAGIC} {VERSION_MAJOR}.{VERSION_MINOR}")
    writer.line(TEXT_WARNING_LINE)
    writer.line(record.family.value)
    engine = record.engine
    if engine is not None:
        engine.write(writer)
        if record.domain is None:
            writer.line("canonical")
        else:
            writer.line("custom")
            for lower, upper in zip(record.domain.lower, record.domain.upper):
                writer.floats([lower, upper])
        if record.conformal is None:
            writer.line("nonconformal")
        else:
            writer.line("asinconformal")
            writer.ints(record.conformal.truncation)
        if record.level_limits is None:
            writer.line("unlimited")
        else:
            writer.line("limited")
            writer.ints(record.level_limits)
        if engine.is_using_construction():
            writer.line("constructing")
            engine.write_construction(writer)
        else:
            writer.line("static")
    writer.line(TEXT_END_MARKER)


def write_binary(stream: IO[bytes], record: GridRecord) -> None:
    writer = BinaryRecordWriter(stream)
    writer.tag(BINARY_MAGIC)
    writer.tag(record.family.binary_tag)
    engine = record.engine
    if engine is not None:
        engine.write(writer)
        if record.domain is None:
            writer.tag(b"n")
        else:
            writer.tag(b"y")
            writer.floats(record.domain.lower)
            writer.floats(record.domain.upper)
        if record.conformal is None:
            writer.tag(b"n")
        else:
            writer.tag(b"a")
            writer.ints(record.conformal.truncation)
        if record.level_limits is None:
            writer.tag(b"n")
        else:
            writer.tag(b"y")
            writer.ints(record.level_limits)
        if engine.is_using_construction():
            writer.tag(b"c")
            engine.write_construction(writer)
        else:
            writer.tag(b"s")
    writer.tag(b"e")


def write_grid(filename: Union[str, Path], record: GridRecord, binary: bool = False) -> None:
    if binary:
        with open(filename, "wb") as f:
            write_binary(f, record)
    else:
        with open(filename, "w", encoding="utf-8") as f:
            write_text(f, record)
    logger.debug("wrote %s grid to %s (%s)", record.family.value, filename,
                 "binary" if binary else "text")


# =============================================================================
# Reading
# =============================================================================


def parse_version(text: str) -> Tuple[int, int]:
    """Check the ``SGRID major.minor`` header line."""
    tokens = text.split()
    if len(tokens) != 2 or tokens[0] != TEXT_MAGIC:
        raise FormatCorruptionError(f"not a grid file, header is '{text[:40]}'")
    try:
        major, minor = (int(part) for part in tokens[1].split("."))
    except ValueError:
        raise FormatCorruptionError(f"malformed version '{tokens[1]}'") from None
    if (major, minor) > (VERSION_MAJOR, VERSION_MINOR):
        raise FormatCorruptionError(
            f"file version {major}.{minor} is newer than this library "
            f"({VERSION_MAJOR}.{VERSION_MINOR}), cannot time-travel"
        )
    if major < MIN_SUPPORTED_MAJOR:
        raise FormatCorruptionError(f"file version {major}.{minor} is no longer supported")
    return major, minor


def _read_engine(reader, family: GridFamily) -> Optional[BaseGrid]:
    if family is GridFamily.EMPTY:
        return None
    return ENGINES[family].read(reader)


def read_text(lines) -> GridRecord:
    reader = TextRecordReader(lines)
    version = parse_version(reader.line())
    if not reader.line().startswith("WARNING"):
        raise FormatCorruptionError("missing warning line")
    try:
        family = GridFamily.from_string(reader.line())
    except InvalidArgumentError as error:
        raise FormatCorruptionError(str(error)) from None
    record = GridRecord(engine=_read_engine(reader, family))
    dims = record.num_dimensions

    tag = reader.line()
    if record.engine is not None and tag != TEXT_END_MARKER:
        if tag == "custom":
            bounds = np.array([reader.floats(2) for _ in range(dims)])
            record.domain = DomainTransform(bounds[:, 0], bounds[:, 1])
        elif tag != "canonical":
            raise FormatCorruptionError(f"unknown domain block '{tag}'")
        tag = reader.line()
    # conformal maps and level limits arrived with 3.0, construction with 3.1
    conformal_known = version >= FORMAT_CONFORMAL_SINCE
    if record.engine is not None and conformal_known and tag != TEXT_END_MARKER:
        if tag == "asinconformal":
            record.conformal = _conformal(reader.ints(dims))
        elif tag != "nonconformal":
            raise FormatCorruptionError(f"unknown conformal block '{tag}'")
        tag = reader.line()
    if record.engine is not None and conformal_known and tag != TEXT_END_MARKER:
        if tag == "limited":
            record.level_limits = reader.ints(dims)
        elif tag != "unlimited":
            raise FormatCorruptionError(f"unknown level limits block '{tag}'")
        tag = reader.line()
    if record.engine is not None and version >= FORMAT_CONSTRUCTION_SINCE and tag != TEXT_END_MARKER:
        if tag == "constructing":
            record.engine.read_construction(reader)
        elif tag != "static":
            raise FormatCorruptionError(f"unknown construction block '{tag}'")
        tag = reader.line()
    if tag != TEXT_END_MARKER:
        raise FormatCorruptionError(f"expected '{TEXT_END_MARKER}', found '{tag}'")
    return record


def _conformal(truncation) -> ConformalAsin:
    try:
        return ConformalAsin(truncation)
    except InvalidArgumentError as error:
        raise FormatCorruptionError(str(error)) from None


def read_binary(stream: IO[bytes]) -> GridRecord:
    if stream.read(len(BINARY_MAGIC)) != BINARY_MAGIC:
        raise FormatCorruptionError("not a binary grid file")
    reader = BinaryRecordReader(stream)
    family = GridFamily.from_binary_tag(reader.tag())
    if family is None:
        raise FormatCorruptionError("unknown grid family tag")
    record = GridRecord(engine=_read_engine(reader, family))
    dims = record.num_dimensions

    tag = reader.tag()
    if record.engine is not None and tag != b"e":
        if tag == b"y":
            lower = reader.floats(dims)
            record.domain = DomainTransform(lower, reader.floats(dims))
        elif tag != b"n":
            raise FormatCorruptionError("unknown domain block")
        tag = reader.tag()
    if record.engine is not None and tag != b"e":
        if tag == b"a":
            record.conformal = _conformal(reader.ints(dims))
        elif tag != b"n":
            raise FormatCorruptionError("unknown conformal block")
        tag = reader.tag()
    if record.engine is not None and tag != b"e":
        if tag == b"y":
            record.level_limits = reader.ints(dims)
        elif tag != b"n":
            raise FormatCorruptionError("unknown level limits block")
        tag = reader.tag()
    if record.engine is not None and tag != b"e":
        if tag == b"c":
            record.engine.read_construction(reader)
        elif tag != b"s":
            raise FormatCorruptionError("unknown construction block")
        tag = reader.tag()
    if tag != b"e":
        raise FormatCorruptionError("missing end of grid marker")
    return record


def write_stream(stream: IO[bytes], record: GridRecord, binary: bool = False) -> None:
    """Write to a byte stream, text records are UTF-8 encoded."""
    if binary:
        write_binary(stream, record)
        return
    buffer = io.StringIO()
    write_text(buffer, record)
    stream.write(buffer.getvalue().encode("utf-8"))


def read_stream(stream: IO[bytes]) -> GridRecord:
    """Read a text or binary grid from a byte stream, sniffing the magic.

    Raises:
        FormatCorruptionError: On any malformed, truncated or inconsistent input.
    """
    data = stream.read()
    if not data:
        raise FormatCorruptionError("empty grid file")
    try:
        if data.startswith(BINARY_MAGIC):
            return read_binary(io.BytesIO(data))
        return read_text(data.decode("utf-8").splitlines())
    except UnicodeDecodeError:
        raise FormatCorruptionError("grid file is neither text nor binary") from None
    except (ValueError, IndexError, KeyError) as error:
        # payload arrays that disagree with their declared sizes
        raise FormatCorruptionError(f"inconsistent grid payload: {error}") from error


def read_grid(filename: Union[str, Path]) -> GridRecord:
    with open(filename, "rb") as f:
        record = read_stream(f)
    logger.debug("read %s grid from %s", record.family.value, filename)
    return record
