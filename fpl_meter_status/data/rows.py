"""CSV parsing and address/unit normalization for lookup rows"""

import csv
import io
import re
from dataclasses import dataclass
from typing import Optional

# Export column names used by the property spreadsheets
ADDRESS_COLUMN = "ADDRESS_LI"
CITY_COLUMN = "CITY"
STATE_COLUMN = "STATE"
ZIP_COLUMNS = ("ZIP", "ZP")

# APT/UNIT only as a whole keyword (APT 4B, APT4B), never a street name prefix
_UNIT_TOKEN = re.compile(r"(?:^|\s)(?:(?:APT|UNIT)(?![A-Z])|#)\s*([\w-]+)")
_UNIT_SPLIT = re.compile(r"\s+(?:(?:APT|UNIT)(?![a-z])|#)\s*[\w-]+", re.I)


@dataclass(frozen=True)
class NormalizedRow:
    address: str
    unit: Optional[str] = None


def _cell(row, key):
    value = row.get(key)
    return "" if value is None else str(value).strip()


def normalize_row(raw):
    """Turn a raw row into the address/unit pair typed into the portal

    Accepts a spreadsheet row (ADDRESS_LI / CITY / STATE / ZIP or ZP), an
    already-normalized `{"address", "unit"}` mapping, or a NormalizedRow,
    which is returned unchanged. The unit token (APT, UNIT or #) is lifted
    off the street line.

    >>> normalize_row({"ADDRESS_LI": "12 Palm Ave APT 4B", "CITY": "Miami",
    ...                "STATE": "FL", "ZIP": "33101"})
    NormalizedRow(address='12 Palm Ave, Miami, FL 33101', unit='4B')
    """
    if isinstance(raw, NormalizedRow):
        return raw

    if ADDRESS_COLUMN not in raw and "address" in raw:
        unit = _cell(raw, "unit")
        return NormalizedRow(address=_cell(raw, "address"), unit=unit or None)

    line = _cell(raw, ADDRESS_COLUMN)
    city = _cell(raw, CITY_COLUMN)
    state = _cell(raw, STATE_COLUMN)
    zip_code = next((_cell(raw, key) for key in ZIP_COLUMNS if _cell(raw, key)), "")

    match = _UNIT_TOKEN.search(line.upper())
    unit = match.group(1) if match else None

    street = _UNIT_SPLIT.split(line)[0].strip()
    address = ", ".join(part for part in (street, city, state) if part)
    if zip_code:
        address += f" {zip_code}"
    return NormalizedRow(address=address, unit=unit)


def parse_csv_text(text):
    """Parse CSV text with a header row into a list of trimmed dicts, skipping blank lines"""
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")), skipinitialspace=True)
    rows = []
    for record in reader:
        cleaned = {
            (key or "").strip(): (value or "").strip()
            for key, value in record.items()
            if key is not None
        }
        if any(cleaned.values()):
            rows.append(cleaned)
    return rows
