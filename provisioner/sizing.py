# provisioner/sizing.py
import logging

log = logging.getLogger(__name__)


def family_of(size: str) -> str:
    return size.lower().split(".")[0]


def next_larger_size(catalog, current: str) -> str:
    """
    First size after `current` in an ascending catalog with strictly more vCPUs.
    Returns `current` when it is already the largest or not in the catalog.
    """
    names = [s.name for s in catalog]
    if current not in names:
        return current
    idx = names.index(current)
    for option in catalog[idx + 1:]:
        if option.vcpu > catalog[idx].vcpu:
            return option.name
    return current


class SizeOptimizer:
    def __init__(self, prices):
        self.prices = prices

    def best_spot_size_for_on_demand_price(self, base_size: str, zone: str) -> str:
        """
        Walk up the family while the next size's spot price stays below the
        on-demand price of `base_size`. Always compares against that fixed
        baseline, never against intermediate spot prices.
        """
        baseline = self.prices.price_for_size(base_size)
        catalog = self.prices.sibling_sizes_in_family(family_of(base_size))

        best = base_size
        while True:
            candidate = next_larger_size(catalog, best)
            if candidate == best:
                break
            spot = self.prices.spot_price_for_size(candidate, zone)
            if not (0 < spot < baseline):
                log.info("Stopping at %s: spot for %s is $%s (on-demand baseline $%s)", best, candidate, spot, baseline)
                break
            log.info("Upgrading %s -> %s: spot $%s < on-demand baseline $%s", best, candidate, spot, baseline)
            best = candidate
        return best
