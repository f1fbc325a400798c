"""Header extraction and field parsing for SAP module files.

A SAP file starts with a CR LF separated text block, e.g.::

    SAP
    AUTHOR "Rob Hubbard"
    NAME "Commando"
    DATE "12/03/1987"
    TYPE B
    STEREO

followed by the binary payload, which begins with the bytes FF FF. Only the
first four lines are read positionally; ``STEREO`` may appear anywhere.
"""

import logging
import os
from typing import List, Union

from sap_schema import YEAR_RE, SapDocument

logger = logging.getLogger(__name__)

SENTINEL = b"\xff\xff"
LINE_SEP = b"\r\n"
VALUE_SEP = b' "'
STEREO_TAG = b"STEREO"

AUTHOR_LINE = 1
NAME_LINE = 2
DATE_LINE = 3


class ReadError(OSError):
    """A SAP file could not be opened or read."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"cannot read {path}: {reason}")
        self.path = path


class MalformedHeaderError(ValueError):
    """A header line is missing or has no quoted value."""


def split_header(buf: bytes) -> bytes:
    return buf.split(SENTINEL, 1)[0]


def read_header(path: Union[str, os.PathLike]) -> bytes:
    """Return the bytes before the first FF FF sentinel (or the whole file)."""
    try:
        with open(path, "rb") as fh:
            buf = fh.read()
    except OSError as exc:
        raise ReadError(os.fspath(path), exc.strerror or str(exc)) from exc
    return split_header(buf)


def split_lines(header: bytes) -> List[bytes]:
    return header.split(LINE_SEP)


def _decode(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def _quoted(line: bytes) -> bytes:
    parts = line.split(VALUE_SEP)
    if len(parts) < 2:
        raise MalformedHeaderError(f"no quoted value in {line[:40]!r}")
    return parts[1]


def take_value(line: bytes) -> str:
    return _decode(_quoted(line).replace(b'"', b""))


def take_year(line: bytes) -> str:
    match = YEAR_RE.search(_decode(_quoted(line)))
    return match.group(0) if match else ""


def has_stereo(header: bytes) -> bool:
    return STEREO_TAG in header


def _field(lines: List[bytes], pos: int, take, strict: bool) -> str:
    try:
        if pos >= len(lines):
            raise MalformedHeaderError(f"header has {len(lines)} lines, need line {pos}")
        return take(lines[pos])
    except MalformedHeaderError:
        if strict:
            raise
        logger.debug("empty field at header line %d", pos, exc_info=True)
        return ""


def parse_header(header: bytes, stereo: bool = True, strict: bool = False) -> SapDocument:
    """Build a SapDocument from a header segment.

    Missing lines and lines without a quoted value give empty fields; with
    ``strict`` they raise MalformedHeaderError instead. A header that yields
    no author, name or date at all raises MalformedHeaderError in either mode.
    ``stereo=False`` leaves the Stereo field unset for indexes created without it.
    """
    lines = split_lines(header)
    author = _field(lines, AUTHOR_LINE, take_value, strict)
    name = _field(lines, NAME_LINE, take_value, strict)
    date = _field(lines, DATE_LINE, take_year, strict)
    if not (author or name or date):
        raise MalformedHeaderError("header has no author, name or date")
    return SapDocument(
        Author=author,
        Name=name,
        Date=date,
        Stereo=has_stereo(header) if stereo else None,
    )


def extract_document(path: Union[str, os.PathLike], stereo: bool = True, strict: bool = False) -> SapDocument:
    return parse_header(read_header(path), stereo=stereo, strict=strict)
