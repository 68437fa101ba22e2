"""
Listing provider adapter (Provider A)
Fast and cheap, strong on current listings and images
"""

from typing import Any, Dict, List, Optional
import httpx

from ..config import get_config
from ..utils import get_logger
from .base import DataProvider, Image, ListingAdapter, RawRecord, payload_list, to_float, to_int
from .http_client import ProviderHttpClient

logger = get_logger(__name__)


class ListingProvider(ListingAdapter):
    """
    RapidAPI-hosted listing search
    Responses carry a `props` array of listings keyed by provider id
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(DataProvider.PROVIDER_A)
        self.config = get_config()
        providers = self.config.providers
        self.api_key = providers.provider_a_key
        self.http = ProviderHttpClient(
            self.provider.value,
            providers.provider_a_url,
            headers={
                "X-RapidAPI-Key": providers.provider_a_key,
                "X-RapidAPI-Host": providers.provider_a_host,
            },
            timeout=providers.http_timeout,
            transport=transport
        )

    async def connect(self):
        await self.http.open()
        self.is_connected = True
        logger.info("Listing provider client initialized")

    async def disconnect(self):
        await self.http.close()
        self.is_connected = False

    async def health_check(self) -> bool:
        return bool(self.api_key)

    async def search(self, criteria: Dict[str, Any]) -> List[RawRecord]:
        """
        Search for-sale listings

        Args:
            criteria: address, city, state, price/bed bounds, property_type, page
        """
        parts = (criteria.get("address"), criteria.get("city"), criteria.get("state"))
        location = ", ".join(p for p in parts if p)
        if not location:
            location = criteria.get("zip_code") or criteria.get("query") or ""

        params = {
            "location": location,
            "status_type": "ForSale",
            "priceMin": criteria.get("min_price"),
            "priceMax": criteria.get("max_price"),
            "bedsMin": criteria.get("min_beds"),
            "bedsMax": criteria.get("max_beds"),
            "page": criteria.get("page"),
        }
        property_type = criteria.get("property_type")
        if property_type and property_type != "any":
            params["home_type"] = property_type

        data = await self.http.get_json("/propertyExtendedSearch", params)
        listings = payload_list(self.provider.value, data, "props")

        records = [self._to_raw_record(item) for item in listings if isinstance(item, dict)]
        logger.debug(f"Listing search for {location!r} returned {len(records)} records")
        return records

    async def fetch_images(self, identifier: str) -> List[Image]:
        """Fetch the full image carousel for a listing"""
        data = await self.http.get_json("/images", {"zpid": identifier})
        urls = payload_list(self.provider.value, data, "images")
        return [Image(url=url, identifier=identifier) for url in urls if isinstance(url, str) and url]

    def _to_raw_record(self, item: Dict[str, Any]) -> RawRecord:
        identifier = item.get("zpid")
        return RawRecord(
            provider=self.provider.value,
            identifier=str(identifier) if identifier is not None else None,
            address=item.get("address"),
            price=to_float(item.get("price")),
            beds=to_int(item.get("bedrooms")),
            baths=to_float(item.get("bathrooms")),
            sqft=to_int(item.get("livingArea")),
            latitude=to_float(item.get("latitude")),
            longitude=to_float(item.get("longitude")),
            image_url=item.get("imgSrc"),
            extra={
                k: item[k] for k in ("propertyType", "yearBuilt", "listingStatus")
                if k in item
            }
        )
