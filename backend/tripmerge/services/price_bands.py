"""Price band clustering — Budget / Mid-range / Luxury partitions of hotel offers."""

from collections import Counter
from dataclasses import dataclass, field

from tripmerge.config import settings
from tripmerge.schemas.offers import HotelOffer

BUDGET = "Budget"
MID_RANGE = "Mid-range"
LUXURY = "Luxury"
BAND_ORDER = (BUDGET, MID_RANGE, LUXURY)
TOP_AMENITIES = 5

RECOMMENDED_FOR = {
    BUDGET: ["Budget travelers", "Backpackers", "Extended stays"],
    MID_RANGE: ["Leisure travelers", "Couples", "Weekend getaways"],
    LUXURY: ["Luxury travelers", "Special occasions", "Business executives"],
}
FAMILY_AMENITIES = {"pool", "family_rooms"}
BUSINESS_AMENITIES = {"business_center", "wifi"}


@dataclass
class PriceBand:
    label: str
    min_price: float
    max_price: float
    average_price: float
    average_rating: float
    average_star_rating: float
    top_amenities: list[str]
    recommended_for: list[str]
    offers: list[HotelOffer] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.offers)

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "count": self.count,
            "min_price": self.min_price,
            "max_price": self.max_price,
            "average_price": self.average_price,
            "average_rating": self.average_rating,
            "average_star_rating": self.average_star_rating,
            "top_amenities": self.top_amenities,
            "recommended_for": self.recommended_for,
            "offer_ids": [o.id for o in self.offers],
        }


def nightly_price(offer: HotelOffer) -> float:
    return offer.price_per_night or offer.price.amount / max(1, offer.nights)


def band_label(price: float, budget_threshold: float, luxury_threshold: float) -> str:
    """Budget: [min, budget); Mid-range: [budget, luxury); Luxury: [luxury, max]."""
    if price < budget_threshold:
        return BUDGET
    if price < luxury_threshold:
        return MID_RANGE
    return LUXURY


def top_amenities(offers: list[HotelOffer], limit: int = TOP_AMENITIES) -> list[str]:
    counts = Counter(a for o in offers for a in set(o.hotel.amenities))
    return [a for a, _ in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]]


def average_rating(offers: list[HotelOffer]) -> float:
    ratings = [o.hotel.guest_rating for o in offers if o.hotel.guest_rating]
    return round(sum(ratings) / len(ratings), 2) if ratings else 0.0


def average_star_rating(offers: list[HotelOffer]) -> float:
    stars = [o.hotel.star_rating for o in offers if o.hotel.star_rating]
    return round(sum(stars) / len(stars), 2) if stars else 0.0


def _recommended_for(label: str, offers: list[HotelOffer]) -> list[str]:
    recommended = list(RECOMMENDED_FOR[label])
    if any(FAMILY_AMENITIES & set(o.hotel.amenities) or o.hotel.property_type == "resort" for o in offers):
        recommended.append("Families")
    if any(BUSINESS_AMENITIES & set(o.hotel.amenities) for o in offers):
        recommended.append("Business travelers")
    return recommended


class PriceBandClusterer:
    """Partitions hotel offers by nightly price using two thresholds."""

    def cluster(
        self,
        offers: list[HotelOffer],
        budget_threshold: float | None = None,
        luxury_threshold: float | None = None,
    ) -> list[PriceBand]:
        """
        Every offer lands in exactly one band, so band counts sum to len(offers).
        Empty bands are omitted.
        """
        budget_threshold = budget_threshold if budget_threshold is not None else settings.price_band_budget_threshold
        luxury_threshold = luxury_threshold if luxury_threshold is not None else settings.price_band_luxury_threshold
        if budget_threshold >= luxury_threshold:
            raise ValueError("Budget threshold must be below luxury threshold")

        grouped: dict[str, list[HotelOffer]] = {label: [] for label in BAND_ORDER}
        for offer in offers:
            grouped[band_label(nightly_price(offer), budget_threshold, luxury_threshold)].append(offer)

        bands = []
        for label in BAND_ORDER:
            members = grouped[label]
            if not members:
                continue
            prices = [nightly_price(o) for o in members]
            bands.append(PriceBand(
                label=label,
                min_price=round(min(prices), 2),
                max_price=round(max(prices), 2),
                average_price=round(sum(prices) / len(prices), 2),
                average_rating=average_rating(members),
                average_star_rating=average_star_rating(members),
                top_amenities=top_amenities(members),
                recommended_for=_recommended_for(label, members),
                offers=members,
            ))
        return bands


price_band_clusterer = PriceBandClusterer()
