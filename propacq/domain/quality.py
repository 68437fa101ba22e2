"""Field-completeness tiers for enriched records.

Each tier's requirements are a superset of the next one down:

    excellent  valid address, price, beds, baths, coordinates, >= 1 image
    good       valid address, price, beds, baths, coordinates
    partial    valid address, and price or beds+baths
    poor       everything else

A valid address has a parsed street and a 5-digit zip.
"""

import re
from typing import Dict

from propacq.domain.models import DataQuality, EnrichedRecord

ZIP = re.compile(r"^\d{5}$")


def field_checks(record: EnrichedRecord) -> Dict[str, bool]:
    address = record.address
    coords = record.coordinates
    return {
        'has_valid_address': bool(
            address is not None and address.street and address.zip and ZIP.match(address.zip)
        ),
        'has_price': record.price is not None and record.price > 0,
        'has_beds_and_baths': record.beds is not None and record.baths is not None,
        'has_location': bool(coords and coords[0] is not None and coords[1] is not None),
        'has_image': bool(record.primary_image or record.image_set),
    }


def assess_quality(record: EnrichedRecord) -> DataQuality:
    """Tier for a record after all enrichment has finished."""
    checks = field_checks(record)

    if not checks['has_valid_address']:
        return DataQuality.POOR

    complete = checks['has_price'] and checks['has_beds_and_baths'] and checks['has_location']
    if complete and checks['has_image']:
        return DataQuality.EXCELLENT
    if complete:
        return DataQuality.GOOD
    if checks['has_price'] or checks['has_beds_and_baths']:
        return DataQuality.PARTIAL
    return DataQuality.POOR
