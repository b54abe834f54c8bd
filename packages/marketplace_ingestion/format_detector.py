"""
Format detection and table reading for uploaded marketplace reports.

Resolves the file kind (delimited text or spreadsheet) from magic bytes or
the extension, picks the parser strategy for the caller's channel, and reads
the file into a RawTable with pandas.
"""

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence

import msoffcrypto
import pandas as pd
import structlog

from .channels import ChannelParser, parser_for
from .exceptions import (
    InvalidPasswordError,
    PasswordRequiredError,
    UnsupportedFormatError,
)
from .models import Channel, FileKind, RawTable
from .normalizers import is_blank

logger = structlog.get_logger(__name__)

_ZIP_MAGIC = b"PK\x03\x04"
# OLE2 Compound Document: legacy .xls or an encrypted OOXML workbook
_OLE2_MAGIC = b"\xD0\xCF\x11\xE0\xA1\xB1\x1A\xE1"

DELIMITED_EXTENSIONS = (".csv", ".txt", ".tsv")
SPREADSHEET_EXTENSIONS = (".xlsx", ".xlsm", ".xls")
CSV_ENCODINGS = ["utf-8-sig", "utf-8", "latin-1", "cp1252"]
HEADER_SCAN_ROWS = 30


@dataclass
class Detection:
    kind: FileKind
    channel: Channel
    parser: ChannelParser


def _is_ole2(content: bytes) -> bool:
    return content[:8] == _OLE2_MAGIC


def detect_file_kind(content: bytes, filename: str = "") -> FileKind:
    """Resolve the file kind, preferring magic bytes over the extension."""
    if content.startswith(_ZIP_MAGIC) or _is_ole2(content):
        return FileKind.SPREADSHEET

    suffix = Path(filename or "").suffix.lower()
    if suffix in SPREADSHEET_EXTENSIONS:
        # Spreadsheet extension without a workbook container
        raise UnsupportedFormatError(
            f"File '{filename}' is not a valid spreadsheet workbook"
        )
    if suffix in DELIMITED_EXTENSIONS:
        return FileKind.DELIMITED_TEXT

    raise UnsupportedFormatError(
        f"Unsupported file type '{suffix or filename}'. "
        f"Accepted: {', '.join(DELIMITED_EXTENSIONS + SPREADSHEET_EXTENSIONS)}"
    )


def detect(content: bytes, filename: str, channel_hint: str) -> Detection:
    """
    Resolve file kind and parser strategy for an upload.

    Raises UnsupportedFormatError when the file kind or channel is unknown.
    Nothing is persisted before this succeeds.
    """
    kind = detect_file_kind(content, filename)
    try:
        channel = Channel.from_key(channel_hint)
    except ValueError as e:
        raise UnsupportedFormatError(str(e)) from e
    parser = parser_for(channel)
    logger.info(
        "format_detected",
        filename=filename,
        kind=kind.value,
        channel=channel.value,
        parser=type(parser).__name__,
    )
    return Detection(kind=kind, channel=channel, parser=parser)


def read_table(
    content: bytes,
    kind: FileKind,
    header_markers: Sequence[str] = (),
    preferred_sheets: Sequence[str] = (),
    password: Optional[str] = None,
) -> RawTable:
    """Read a delimited or spreadsheet file into header-keyed rows."""
    if kind is FileKind.SPREADSHEET:
        grid = _read_spreadsheet_grid(content, preferred_sheets, password)
    else:
        grid = _read_delimited_grid(content)
    return _grid_to_table(grid, header_markers)


def _read_delimited_grid(content: bytes) -> List[List[Any]]:
    for encoding in CSV_ENCODINGS:
        try:
            text = content.decode(encoding)
        except UnicodeDecodeError:
            continue

        try:
            df = pd.read_csv(
                io.StringIO(text),
                sep=None,
                engine="python",
                header=None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
            )
        except pd.errors.EmptyDataError:
            return []
        except (pd.errors.ParserError, ValueError) as e:
            raise UnsupportedFormatError(f"Could not parse delimited file: {e}") from e
        return df.values.tolist()

    raise UnsupportedFormatError("Could not decode delimited file with any known encoding")


def _open_workbook(content: bytes, password: Optional[str]):
    """Return (workbook stream, pandas engine), decrypting when needed."""
    if not _is_ole2(content):
        return io.BytesIO(content), "openpyxl"

    office_file = msoffcrypto.OfficeFile(io.BytesIO(content))
    if not office_file.is_encrypted():
        return io.BytesIO(content), "xlrd"

    if not password:
        raise PasswordRequiredError("Password required")

    decrypted = io.BytesIO()
    try:
        office_file.load_key(password=password)
        office_file.decrypt(decrypted)
    except Exception as e:
        msg = str(e).lower()
        if "password" in msg or "decrypt" in msg or "key" in msg:
            raise InvalidPasswordError("Invalid password") from e
        raise UnsupportedFormatError(f"Failed to decrypt file: {e}") from e
    decrypted.seek(0)
    return decrypted, "openpyxl"


def _read_spreadsheet_grid(
    content: bytes, preferred_sheets: Sequence[str], password: Optional[str]
) -> List[List[Any]]:
    workbook, engine = _open_workbook(content, password)
    try:
        sheets = pd.read_excel(
            workbook, sheet_name=None, header=None, dtype=object, engine=engine
        )
    except (ValueError, KeyError, OSError) as e:
        raise UnsupportedFormatError(f"Could not read spreadsheet: {e}") from e

    if not sheets:
        return []

    by_lower = {str(name).strip().lower(): name for name in sheets}
    sheet_name = next(iter(sheets))
    for preferred in preferred_sheets:
        match = by_lower.get(preferred.lower())
        if match is not None:
            sheet_name = match
            break

    logger.debug("sheet_selected", sheet=str(sheet_name), available=list(by_lower))
    return sheets[sheet_name].values.tolist()


def _clean_cell(value: Any) -> Any:
    if is_blank(value):
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return value


def find_header_row(grid: List[List[Any]], header_markers: Sequence[str]) -> int:
    """Index of the first row (within the scan window) holding a header marker."""
    markers = [m.lower() for m in header_markers]
    if not markers:
        return 0
    for idx, row in enumerate(grid[:HEADER_SCAN_ROWS]):
        cells = [str(c).lower() for c in row if isinstance(c, str) and c.strip()]
        if any(marker in cell for cell in cells for marker in markers):
            return idx
    return 0


def _grid_to_table(grid: List[List[Any]], header_markers: Sequence[str]) -> RawTable:
    grid = [[_clean_cell(c) for c in row] for row in grid]
    if not grid:
        return RawTable(headers=[], rows=[])

    header_idx = find_header_row(grid, header_markers)
    headers: List[str] = []
    seen = {}
    for i, cell in enumerate(grid[header_idx]):
        name = str(cell).replace("\ufeff", "").strip() or f"column_{i}"
        if name in seen:
            seen[name] += 1
            name = f"{name}.{seen[name]}"
        else:
            seen[name] = 0
        headers.append(name)

    rows = []
    for raw in grid[header_idx + 1:]:
        padded = list(raw) + [""] * (len(headers) - len(raw))
        rows.append(dict(zip(headers, padded)))

    return RawTable(headers=headers, rows=rows)
