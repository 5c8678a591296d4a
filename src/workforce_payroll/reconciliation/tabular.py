"""Tabular readers: raw upload bytes -> list of row mappings."""

from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import Any, Protocol
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from workforce_payroll.errors import ValidationError


class TabularReader(Protocol):
    """Turns raw file bytes into rows keyed by header text."""

    def read(self, data: bytes) -> list[dict[str, str]]:
        ...


class CsvReader:
    """CSV reader tolerant of a UTF-8 BOM and Excel-style dialects."""

    def __init__(self, encoding: str = "utf-8-sig"):
        self.encoding = encoding

    def read(self, data: bytes) -> list[dict[str, str]]:
        try:
            text = data.decode(self.encoding)
        except UnicodeDecodeError:
            # Excel on Windows still exports cp1252
            text = data.decode("cp1252")

        if not text.strip():
            raise ValidationError("Uploaded file is empty")

        try:
            dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t")
        except csv.Error:
            dialect = csv.excel

        reader = csv.DictReader(io.StringIO(text), dialect=dialect)
        if not reader.fieldnames:
            raise ValidationError("Uploaded file has no header row")

        rows: list[dict[str, str]] = []
        for raw in reader:
            row = {k: (v or "") for k, v in raw.items() if k is not None}
            if any(value.strip() for value in row.values()):
                rows.append(row)
        return rows


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        # Phone numbers and whole amounts come back as floats like 5550102020.0
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value).strip()


class XlsxReader:
    """Excel workbook reader. Cached formula results are read, not formulas."""

    def __init__(self, sheet: str | None = None):
        self.sheet = sheet

    def read(self, data: bytes) -> list[dict[str, str]]:
        if not data:
            raise ValidationError("Uploaded file is empty")
        try:
            workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except (BadZipFile, InvalidFileException, KeyError, OSError) as e:
            raise ValidationError(f"Uploaded file is not a readable workbook: {e}") from None

        try:
            if self.sheet is None:
                sheet = workbook.worksheets[0]
            elif self.sheet in workbook.sheetnames:
                sheet = workbook[self.sheet]
            else:
                raise ValidationError(f"Workbook has no sheet named '{self.sheet}'")

            values = sheet.iter_rows(values_only=True)
            header = next(values, None)
            if header is None or not any(_cell_text(v) for v in header):
                raise ValidationError("Uploaded file has no header row")
            names = [_cell_text(v) for v in header]

            rows: list[dict[str, str]] = []
            for raw in values:
                # Read-only sheets can yield rows shorter than the header
                row = dict.fromkeys((name for name in names if name), "")
                for name, value in zip(names, raw):
                    if name:
                        row[name] = _cell_text(value)
                if any(row.values()):
                    rows.append(row)
            return rows
        finally:
            workbook.close()
