# provisioner/pricing.py
import json
import logging
from dataclasses import dataclass

from botocore.exceptions import ClientError

from provisioner.errors import PricingUnavailable, ProviderError

log = logging.getLogger(__name__)

# The Price List API is only served from a handful of regions
PRICING_API_REGION = "us-east-1"


@dataclass(frozen=True)
class SizeOption:
    name: str
    vcpu: int


class PriceResolver:
    """
    Current on-demand and spot quotes, plus the size catalog of a family.
    Quotes are never cached; every call goes back to AWS.
    """

    def __init__(self, provider, pricing_client, region: str):
        self.provider = provider
        self.pricing = pricing_client
        self.region = region

    @classmethod
    def from_session(cls, session, provider, region: str):
        return cls(provider, session.client("pricing", region_name=PRICING_API_REGION), region)

    def price_for_size(self, size: str) -> float:
        try:
            resp = self.pricing.get_products(
                ServiceCode="AmazonEC2",
                Filters=[
                    {"Type": "TERM_MATCH", "Field": "instanceType", "Value": size},
                    {"Type": "TERM_MATCH", "Field": "regionCode", "Value": self.region},
                    {"Type": "TERM_MATCH", "Field": "operatingSystem", "Value": "Linux"},
                    {"Type": "TERM_MATCH", "Field": "tenancy", "Value": "Shared"},
                    {"Type": "TERM_MATCH", "Field": "preInstalledSw", "Value": "NA"},
                    {"Type": "TERM_MATCH", "Field": "capacitystatus", "Value": "Used"},
                    {"Type": "TERM_MATCH", "Field": "marketoption", "Value": "OnDemand"},
                ],
                MaxResults=10,
            )
        except ClientError as e:
            raise ProviderError(f"Pricing lookup failed for {size}: {e}")

        for raw in resp.get("PriceList", []):
            product = json.loads(raw) if isinstance(raw, str) else raw
            for term in product.get("terms", {}).get("OnDemand", {}).values():
                for dim in term.get("priceDimensions", {}).values():
                    usd = dim.get("pricePerUnit", {}).get("USD")
                    if usd and float(usd) > 0:
                        log.debug("On-demand price %s in %s: $%s/hr", size, self.region, usd)
                        return float(usd)

        raise PricingUnavailable(f"No on-demand price for {size} in {self.region}")

    def spot_price_for_size(self, size: str, zone: str) -> float:
        history = self.provider.spot_price_history(size, zone)
        if not history:
            raise PricingUnavailable(f"No spot price history for {size} in {zone}")
        price = history[0]["price"]
        log.debug("Spot price %s in %s: $%s/hr", size, zone, price)
        return price

    def sibling_sizes_in_family(self, family: str, include_bare_metal: bool = False):
        sizes = [
            SizeOption(s["name"], int(s["vcpu"]))
            for s in self.provider.describe_instance_sizes(family, include_bare_metal)
        ]
        if not include_bare_metal:
            sizes = [s for s in sizes if "metal" not in s.name]
        return sorted(sizes, key=lambda s: s.vcpu)
