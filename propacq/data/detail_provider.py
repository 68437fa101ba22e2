"""
Detail provider adapter (Provider B)
Slow and expensive, strong on valuation, tax and sale history
"""

from typing import Any, Dict, List, Optional
import httpx

from ..config import get_config
from ..utils import get_logger
from .base import (
    DataProvider,
    DetailAdapter,
    DetailRecord,
    ProviderUnavailable,
    RawRecord,
    payload_list,
    to_float,
    to_int,
)
from .http_client import ProviderHttpClient

logger = get_logger(__name__)


def _dig(data: Dict[str, Any], *path: str) -> Any:
    """Walk nested dicts, returning None on any missing step"""
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


class DetailProvider(DetailAdapter):
    """
    Property API gateway for address-level detail
    Every response wraps results in a `property` array
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(DataProvider.PROVIDER_B)
        self.config = get_config()
        providers = self.config.providers
        self.api_key = providers.provider_b_key
        self.http = ProviderHttpClient(
            self.provider.value,
            providers.provider_b_url,
            headers={
                "apikey": providers.provider_b_key,
                "Accept": "application/json",
            },
            timeout=providers.http_timeout,
            transport=transport
        )

    async def connect(self):
        await self.http.open()
        self.is_connected = True
        logger.info("Detail provider client initialized")

    async def disconnect(self):
        await self.http.close()
        self.is_connected = False

    async def health_check(self) -> bool:
        return bool(self.api_key)

    async def search(self, criteria: Dict[str, Any]) -> Optional[RawRecord]:
        """
        Look up one property by street address

        Args:
            criteria: address, city, state, zip_code
        """
        street = criteria.get("address")
        if not street:
            return None

        locality = " ".join(
            p for p in (criteria.get("city"), criteria.get("state"), criteria.get("zip_code")) if p
        )
        data = await self.http.get_json(
            "/property/detail",
            {"address1": street, "address2": locality or None}
        )
        properties = payload_list(self.provider.value, data, "property")
        if not properties:
            logger.debug(f"No detail match for {street!r}")
            return None
        return self._to_raw_record(self._first(properties))

    async def enrich(self, identifier: str) -> DetailRecord:
        """Fetch valuation, assessment and sale history for one property"""
        data = await self.http.get_json("/property/expandedprofile", {"attomid": identifier})
        properties = payload_list(self.provider.value, data, "property")
        item = self._first(properties) if properties else {}

        history: List[Dict[str, Any]] = []
        for sale in item.get("salehistory") or []:
            if not isinstance(sale, dict):
                continue
            history.append({
                "date": _dig(sale, "amount", "salerecdate") or sale.get("saleTransDate"),
                "amount": to_float(_dig(sale, "amount", "saleamt")),
            })

        return DetailRecord(
            identifier=identifier,
            valuation=to_float(_dig(item, "avm", "amount", "value")),
            tax_assessment=to_float(_dig(item, "assessment", "tax", "taxamt")),
            year_built=to_int(_dig(item, "summary", "yearbuilt")),
            sale_history=history,
            details={
                "lot_size": to_float(_dig(item, "lot", "lotsize1")),
                "property_type": _dig(item, "summary", "proptype"),
                "stories": to_int(_dig(item, "building", "summary", "levels")),
            },
            provider=self.provider.value
        )

    def _first(self, properties: List[Any]) -> Dict[str, Any]:
        if not isinstance(properties[0], dict):
            raise ProviderUnavailable(self.provider.value, "malformed property entry")
        return properties[0]

    def _to_raw_record(self, item: Dict[str, Any]) -> RawRecord:
        identifier = _dig(item, "identifier", "attomId")
        return RawRecord(
            provider=self.provider.value,
            identifier=str(identifier) if identifier is not None else None,
            address=_dig(item, "address", "oneLine"),
            price=to_float(_dig(item, "sale", "amount", "saleamt")),
            beds=to_int(_dig(item, "building", "rooms", "beds")),
            baths=to_float(_dig(item, "building", "rooms", "bathstotal")),
            sqft=to_int(_dig(item, "building", "size", "livingsize")),
            latitude=to_float(_dig(item, "location", "latitude")),
            longitude=to_float(_dig(item, "location", "longitude")),
            extra={"year_built": to_int(_dig(item, "summary", "yearbuilt"))}
        )
