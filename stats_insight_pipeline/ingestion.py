"""
Tabular ingestion: raw upload bytes -> Dataset.

Rationale:
- CSV exports from Hebrew Excel installs arrive as UTF-8, Windows-1255 or ISO-8859-8,
  with ',' or ';' (or tab/pipe) delimiters, so both are detected instead of assumed.
- Cells are coerced to numbers only when they look numeric; everything else stays text,
  which is what later makes a column categorical.
- Spreadsheets go through pandas (openpyxl / xlrd engines) and reuse the same coercion.
"""

import io
import logging
import math
import numbers
import os
import re
from typing import Any, Dict, List, Optional

import pandas as pd

from .schemas import Dataset

logger = logging.getLogger(__name__)

SPREADSHEET_EXTENSIONS = {".xlsx", ".xls"}
FALLBACK_ENCODINGS = ["cp1255", "iso-8859-8"]
DELIMITER_CANDIDATES = [",", ";", "\t", "|"]
DELIMITER_SAMPLE_LINES = 10

REPLACEMENT_CHAR = "\ufffd"
BOM = "\ufeff"

# Digits, thousands/decimal separators and an optional leading sign only.
NUMERIC_PATTERN = re.compile(r"^[+-]?[\d.,]*\d[\d.,]*$")


class UnreadableFileError(ValueError):
    """The uploaded bytes cannot be turned into a header + rows structure."""


def decode_bytes(raw: bytes) -> str:
    """
    Decode with UTF-8 first; on invalid sequences retry the Hebrew 8-bit encodings
    and keep whichever produced the fewest replacement characters.
    """
    best_text = raw.decode("utf-8", errors="replace")
    best_encoding = "utf-8"
    best_bad = best_text.count(REPLACEMENT_CHAR)

    if best_bad:
        for encoding in FALLBACK_ENCODINGS:
            text = raw.decode(encoding, errors="replace")
            bad = text.count(REPLACEMENT_CHAR)
            if bad < best_bad:
                best_text, best_encoding, best_bad = text, encoding, bad

    logger.info(f"Decoded upload as {best_encoding} ({best_bad} invalid characters)")
    if best_text.startswith(BOM):
        best_text = best_text[1:]
    return best_text


def split_lines(text: str) -> List[str]:
    """Split on \\n or \\r\\n and drop blank lines."""
    return [line for line in re.split(r"\r?\n", text) if line.strip()]


def _count_unquoted(line: str, delimiter: str) -> int:
    count = 0
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            count += 1
    return count


def detect_delimiter(lines: List[str]) -> str:
    """Pick the candidate seen most often outside quotes in the first lines; ',' when none is."""
    sample = [line for line in lines if line.strip()][:DELIMITER_SAMPLE_LINES]
    scores = {
        delimiter: sum(_count_unquoted(line, delimiter) for line in sample)
        for delimiter in DELIMITER_CANDIDATES
    }
    best = max(DELIMITER_CANDIDATES, key=lambda d: scores[d])
    if scores[best] == 0:
        return ","
    logger.debug(f"Delimiter scores: {scores}")
    return best


def parse_line(line: str, delimiter: str = ",") -> List[str]:
    """
    Quote-aware split of one line.
    '""' inside a quoted span is a literal quote; delimiters only split outside quotes.
    """
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
        i += 1
    fields.append("".join(current))
    return [_strip_field(field) for field in fields]


def _strip_field(field: str) -> str:
    field = field.strip()
    if len(field) >= 2 and field.startswith('"') and field.endswith('"'):
        field = field[1:-1]
    return field


def coerce_value(raw: str, delimiter: str = ",") -> Any:
    """
    Turn a text cell into int/float when it looks numeric, None when empty,
    otherwise return it unchanged.

    Semicolon files use the European convention ('.' thousands, ',' decimal);
    every other delimiter uses ',' thousands and '.' decimal.
    """
    text = raw.strip()
    if not text:
        return None
    if not NUMERIC_PATTERN.match(text):
        return raw

    if delimiter == ";":
        normalized = text.replace(".", "").replace(",", ".")
    else:
        normalized = text.replace(",", "")

    try:
        if "." in normalized:
            number = float(normalized)
            return number if math.isfinite(number) else raw
        return int(normalized)
    except ValueError:
        return raw


def _header_names(cells: List[Any]) -> List[str]:
    """
    Blank headers become Column_N (1-based); repeated names get the first free
    numeric suffix, so every emitted name is unique.
    """
    names: List[str] = []
    suffixes: Dict[str, int] = {}
    for index, cell in enumerate(cells):
        base = _cell_text(cell).strip() or f"Column_{index + 1}"
        name = base
        while name in suffixes:
            suffixes[base] += 1
            name = f"{base}_{suffixes[base]}"
        suffixes.setdefault(name, 1)
        names.append(name)
    return names


def _cell_text(cell: Any) -> str:
    if cell is None:
        return ""
    if isinstance(cell, float):
        if math.isnan(cell):
            return ""
        if cell.is_integer():
            return str(int(cell))
    return str(cell)


def parse_delimited(text: str) -> Dataset:
    """Parse already-decoded delimited text into a Dataset."""
    lines = split_lines(text)
    if not lines:
        return Dataset()

    delimiter = detect_delimiter(lines)
    logger.info(f"Detected delimiter {delimiter!r} over {len(lines)} lines")

    header = parse_line(lines[0], delimiter)
    if not header:
        return Dataset()
    columns = _header_names(header)

    rows = []
    for line in lines[1:]:
        values = parse_line(line, delimiter)
        row = {}
        for index, column in enumerate(columns):
            raw = values[index] if index < len(values) else ""
            row[column] = coerce_value(raw, delimiter)
        rows.append(row)

    return Dataset(rows=rows, columns=columns)


def _coerce_cell(cell: Any) -> Any:
    if cell is None:
        return None
    if isinstance(cell, bool):
        return str(cell).upper()
    if isinstance(cell, numbers.Number):
        if isinstance(cell, float) and math.isnan(cell):
            return None
        if hasattr(cell, "item"):
            cell = cell.item()
        return cell
    if isinstance(cell, str):
        return coerce_value(cell, ",")
    if pd.isna(cell):
        return None
    if hasattr(cell, "isoformat"):
        return cell.isoformat()
    return str(cell)


def parse_spreadsheet(raw: bytes) -> Dataset:
    """Read the first sheet; first row is the header, blank rows are skipped."""
    try:
        grid = pd.read_excel(io.BytesIO(raw), sheet_name=0, header=None, dtype=object)
    except Exception as e:
        logger.error(f"Failed to read spreadsheet: {type(e).__name__}: {e}")
        raise UnreadableFileError(f"Could not read spreadsheet: {e}") from e

    records = [
        [None if _is_blank(cell) else cell for cell in record]
        for record in grid.itertuples(index=False, name=None)
    ]
    records = [record for record in records if any(cell is not None for cell in record)]
    if not records:
        return Dataset()

    columns = _header_names(records[0])
    rows = []
    for record in records[1:]:
        rows.append({
            column: _coerce_cell(record[index]) if index < len(record) else None
            for index, column in enumerate(columns)
        })

    logger.info(f"Read spreadsheet with {len(rows)} rows and {len(columns)} columns")
    return Dataset(rows=rows, columns=columns)


def _is_blank(cell: Any) -> bool:
    if cell is None:
        return True
    if isinstance(cell, str):
        return not cell.strip()
    try:
        return bool(pd.isna(cell))
    except (TypeError, ValueError):
        return False


def load_dataset(raw: bytes, file_name: str) -> Dataset:
    """
    Entry point: dispatch on extension and tag the Dataset with its file name.
    Raises UnreadableFileError; an input with no header gives an empty Dataset.
    """
    extension = os.path.splitext(file_name or "")[1].lower()
    if extension in SPREADSHEET_EXTENSIONS:
        dataset = parse_spreadsheet(raw)
    else:
        text = decode_bytes(raw)
        if "\x00" in text:
            raise UnreadableFileError(
                f"'{file_name}' looks like a binary file; upload a CSV or Excel file"
            )
        dataset = parse_delimited(text)

    if dataset.is_empty:
        logger.warning(f"No header found in '{file_name}'")
    return dataset.model_copy(update={"file_name": file_name or ""})


def column_type(values: List[Any], sample_size: Optional[int] = 10) -> str:
    """Preview label for a column: numeric, text, mixed or unknown (first non-null values)."""
    present = [v for v in values if v is not None]
    if sample_size:
        present = present[:sample_size]
    if not present:
        return "unknown"
    numeric = [isinstance(v, numbers.Number) and not isinstance(v, bool) for v in present]
    if all(numeric):
        return "numeric"
    if not any(numeric):
        return "text"
    return "mixed"
