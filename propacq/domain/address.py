"""Free-text address parsing with cascading fallbacks."""

import re
from typing import List, Optional

from propacq.domain.models import Address

UNAVAILABLE = "Address unavailable"

# Tried in order against the "STATE ZIP" segment
STATE_ZIP_PATTERNS = (
    re.compile(r"^([A-Z]{2})\s+(\d{5})(?:-\d{4})?$"),
    re.compile(r"^([A-Z]{2})\s+(\d{5})"),
    re.compile(r"\b([A-Z]{2})\b.*?(\d{5})"),
)
CITY_STATE_ZIP = re.compile(r"^(.*?)\s+([A-Z]{2})\s+(\d{5})(?:-\d{4})?$", re.IGNORECASE)
ANY_ZIP = re.compile(r"\d{5}")


class AddressParser:
    """Parses "street, city, STATE ZIP[-ext]" and degrades gracefully.

    Cascade:
        1. full three-part form, strict then relaxed state/zip segment
        2. two-part "street, city STATE ZIP"
        3. any 5-digit number as zip, state from the home market
        4. single token, city and state from the home market

    Returns None when nothing matches; the caller keeps the record with a
    synthetic one-line address.
    """

    def __init__(self, home_city: str = "Houston", home_state: str = "TX"):
        self.home_city = home_city
        self.home_state = home_state

    def parse(self, text: Optional[str]) -> Optional[Address]:
        if not text or not str(text).strip() or str(text).strip() == 'undefined':
            return None

        parts = [p.strip() for p in str(text).split(',')]

        if len(parts) >= 3:
            return self._parse_full(parts)
        if len(parts) == 2:
            return self._parse_two_part(parts)
        return self._build(parts[0], self.home_city, self.home_state, None)

    def _parse_full(self, parts: List[str]) -> Optional[Address]:
        street, city = parts[0], parts[1]
        state_zip = " ".join(p for p in parts[2:] if p).upper()

        for pattern in STATE_ZIP_PATTERNS:
            match = pattern.search(state_zip)
            if match:
                return self._build(street, city, match.group(1), match.group(2))

        match = ANY_ZIP.search(state_zip)
        if match:
            return self._build(street, city, self.home_state, match.group(0))
        return None

    def _parse_two_part(self, parts: List[str]) -> Optional[Address]:
        street, rest = parts
        match = CITY_STATE_ZIP.match(rest)
        if match and match.group(1):
            return self._build(street, match.group(1), match.group(2).upper(), match.group(3))

        match = ANY_ZIP.search(rest)
        if match:
            city = rest[:match.start()].strip() or self.home_city
            return self._build(street, city, self.home_state, match.group(0))
        return None

    @staticmethod
    def _build(street: str, city: str, state: str, zip_code: Optional[str]) -> Optional[Address]:
        if not street:
            return None
        one_line = f"{street}, {city}, {state}"
        if zip_code:
            one_line += f" {zip_code}"
        return Address(one_line=one_line, street=street, city=city, state=state, zip=zip_code)

    @staticmethod
    def synthetic(text: Optional[str]) -> Address:
        """Address carrying only a display line, for unparseable input."""
        text = str(text).strip() if text else ''
        return Address(one_line=text or UNAVAILABLE)
