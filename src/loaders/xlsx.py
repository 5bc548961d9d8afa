from __future__ import annotations

from io import BytesIO
from typing import Any
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException


class XlsxLoaderError(RuntimeError):
    pass


def load_xlsx_bytes(data: bytes) -> str:
    try:
        workbook = load_workbook(BytesIO(data), data_only=True, read_only=True)
    except (BadZipFile, InvalidFileException, KeyError, OSError) as exc:
        raise XlsxLoaderError(f"Unable to open workbook: {exc}") from exc
    parts: list[str] = []
    try:
        for sheet_name in workbook.sheetnames:
            sheet = workbook[sheet_name]
            parts.append(f"Sheet: {sheet_name}")
            rows = sheet.iter_rows(values_only=True)
            header = next(rows, None)
            if header is None:
                continue
            columns = [_format_cell(value) for value in header]
            for row in rows:
                row_values = [_format_cell(value) for value in row]
                if not any(row_values):
                    continue
                pairs = [
                    f"{column}: {value}" if column else value
                    for column, value in zip(columns, row_values)
                    if value
                ]
                parts.append(", ".join(pairs))
            parts.append("")
    finally:
        workbook.close()
    return "\n".join(parts).strip()


def _format_cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()
