# narrachat/core/attachments.py
from __future__ import annotations
import csv
import io
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Sequence

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .errors import AttachmentError


@dataclass(frozen=True)
class Attachment:
    name: str
    text: str   # opaque to the stream core; merged into the user turn


def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _rows_to_text(rows: Iterable[Sequence]) -> str:
    lines: List[str] = []
    for row in rows:
        cells = [_cell_text(v) for v in row]
        if any(cells):
            lines.append(" | ".join(cells))
    return "\n".join(lines)


def _portfolio(name: str, rows: Iterable[Sequence]) -> Attachment:
    return Attachment(name=name, text=f'Portfolio file "{name}":\n{_rows_to_text(rows)}')


def parse_portfolio_csv(name: str, data: str) -> Attachment:
    return _portfolio(name, csv.reader(io.StringIO(data)))


def parse_portfolio_xlsx(name: str, source) -> Attachment:
    """First worksheet of an .xlsx workbook (path or binary file object), cached values only."""
    try:
        wb = load_workbook(source, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError) as exc:
        raise AttachmentError(f"{name}: not a readable .xlsx workbook") from exc
    try:
        if not wb.worksheets:
            return _portfolio(name, [])
        return _portfolio(name, wb.worksheets[0].iter_rows(values_only=True))
    finally:
        wb.close()


def load_attachment(path: str | Path) -> Attachment:
    """
    Read a portfolio file into an Attachment.

    Understands .csv and .xlsx. Legacy .xls workbooks have to be re-saved
    as .xlsx first.
    """
    p = Path(path[7:] if isinstance(path, str) and path.lower().startswith("file://") else path)
    suffix = p.suffix.lower()
    if suffix == ".xls":
        raise AttachmentError(f"{p.name}: legacy .xls is not supported, save it as .xlsx")
    if suffix not in (".csv", ".xlsx"):
        raise AttachmentError(f"{p.name}: unsupported attachment type")
    try:
        if suffix == ".xlsx":
            return parse_portfolio_xlsx(p.name, str(p))
        data = p.read_text(encoding="utf-8-sig", errors="replace")
    except OSError as exc:
        raise AttachmentError(f"{p.name}: {exc.strerror or exc}") from exc
    return parse_portfolio_csv(p.name, data)
