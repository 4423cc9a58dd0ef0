"""Formatted-address parsing for German-style postal addresses."""

from __future__ import annotations

import re
from dataclasses import dataclass

ZIP_RE = re.compile(r"\b(\d{5})\b")
COUNTRY_NAMES = {"deutschland", "germany"}


@dataclass(frozen=True)
class ParsedAddress:
    city: str = ""
    zip_code: str = ""
    state: str = ""


def parse_address(formatted_address: str | None) -> ParsedAddress:
    """Split "Street, ZIP City, State, Country" into city/zip/state.

    Every field falls back to an empty string; the function never raises.
    """
    if not formatted_address:
        return ParsedAddress()

    parts = [part.strip() for part in formatted_address.split(",")]

    if len(parts) >= 2:
        city_part = parts[-2]
        zip_match = ZIP_RE.search(city_part)
        zip_code = zip_match.group(1) if zip_match else ""
        city = city_part.replace(zip_match.group(0), "", 1).strip() if zip_match else city_part

        last_part = parts[-1]
        if last_part.lower() in COUNTRY_NAMES or last_part.isdigit():
            state = parts[-3] if len(parts) > 3 else ""
        else:
            state = last_part
        return ParsedAddress(city=city or "", zip_code=zip_code, state=state or "")

    zip_match = ZIP_RE.search(formatted_address)
    if not zip_match:
        return ParsedAddress()
    return ParsedAddress(
        city=formatted_address.replace(zip_match.group(0), "", 1).strip(),
        zip_code=zip_match.group(1),
    )
