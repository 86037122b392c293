"""Deal detector — flags favourable prices against rolling history and the current result set.

Price history is kept per (service, provider, route) for the process lifetime,
pruned to a rolling window, with statistics recomputed on every insertion.
Detection runs before the current prices are recorded, so an offer is never
compared against itself.

Rules (independent, any number may fire for one offer):
- price_drop: ≥15% below the trailing 7-point average (needs ≥7 points)
- flash_sale: ≥2 flash indicators and an advertised discount >25%
- last_minute: travel within 7 days (flights) / 3 days (hotels), discount ≥10%
- seasonal: month matches a catalog pattern, discount ≥70% of its expected discount
- error_fare: flights only, ≥70% below the historical mean (needs ≥14 points)
- competitor_beat: ≥5% cheaper than the cheapest other-provider offer
"""

import bisect
import logging
import math
import statistics
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone

from tripmerge.config import settings
from tripmerge.data.catalog import Catalog, load_catalog
from tripmerge.schemas.common import AlertUrgency, DealRarity, DealSeverity, DealType, ServiceType
from tripmerge.schemas.deals import Deal, DealAlert, DealAnalysis, DealInsights, DealSavings
from tripmerge.schemas.offers import CarRentalOffer, FlightOffer, HotelOffer, TransportJourney

logger = logging.getLogger(__name__)

SEVERITY_TIERS = (
    DealSeverity.MINOR,
    DealSeverity.MODERATE,
    DealSeverity.SIGNIFICANT,
    DealSeverity.EXCEPTIONAL,
)

PRICE_DROP_MIN_POINTS = 7
PRICE_DROP_THRESHOLD = 15.0
PRICE_DROP_BOUNDS = (15, 25, 40, 60)
FLASH_SALE_MIN_DISCOUNT = 25.0
FLASH_SALE_BOUNDS = (25, 35, 50, 70)
LAST_MINUTE_MIN_DISCOUNT = 10.0
LAST_MINUTE_BOUNDS = (10, 20, 35, 50)
LAST_MINUTE_DAYS = {ServiceType.FLIGHT: 7, ServiceType.HOTEL: 3}
SEASONAL_BOUNDS = (15, 25, 35, 50)
SEASONAL_SHARE = 0.7
ERROR_FARE_MIN_POINTS = 14
ERROR_FARE_THRESHOLD = 70.0
COMPETITOR_MIN_GAP = 5.0
COMPETITOR_BOUNDS = (5, 10, 20, 30)
EXPIRING_SOON = timedelta(hours=6)
TREND_WINDOW = 7
TREND_CHANGE = 0.05


# --- Price history ---

@dataclass
class PricePoint:
    timestamp: datetime
    price: float
    available: bool = True
    demand: str = "medium"  # low | medium | high


@dataclass
class PriceStatistics:
    min_price: float = 0.0
    max_price: float = 0.0
    mean_price: float = 0.0
    median_price: float = 0.0
    volatility: float = 0.0  # population stddev / mean
    trend: str = "stable"  # rising | stable | falling
    confidence: float = 50.0

    def to_dict(self) -> dict:
        return {
            "min_price": round(self.min_price, 2),
            "max_price": round(self.max_price, 2),
            "mean_price": round(self.mean_price, 2),
            "median_price": round(self.median_price, 2),
            "volatility": round(self.volatility, 4),
            "trend": self.trend,
            "confidence": round(self.confidence, 1),
        }


@dataclass
class PriceHistoryRecord:
    service_type: ServiceType
    provider: str
    route: str
    currency: str = "USD"
    points: list[PricePoint] = field(default_factory=list)
    statistics: PriceStatistics = field(default_factory=PriceStatistics)

    @property
    def prices(self) -> list[float]:
        return [p.price for p in self.points]

    def recompute(self, now: datetime):
        prices = self.prices
        if not prices:
            self.statistics = PriceStatistics()
            return

        ordered = sorted(prices)
        mean = statistics.fmean(prices)
        stats = self.statistics
        stats.min_price = ordered[0]
        stats.max_price = ordered[-1]
        stats.mean_price = mean
        stats.median_price = ordered[len(ordered) // 2]  # upper median
        stats.volatility = statistics.pstdev(prices, mu=mean) / mean if mean > 0 else 0.0

        stats.trend = "stable"
        recent = prices[-TREND_WINDOW:]
        older = prices[-2 * TREND_WINDOW:-TREND_WINDOW]
        if len(prices) >= TREND_WINDOW and older:
            older_avg = statistics.fmean(older)
            change = (statistics.fmean(recent) - older_avg) / older_avg if older_avg else 0.0
            if change > TREND_CHANGE:
                stats.trend = "rising"
            elif change < -TREND_CHANGE:
                stats.trend = "falling"

        age_days = (now - self.points[0].timestamp).total_seconds() / 86400
        stats.confidence = min(95.0, max(30.0, 50 + len(prices) * 2 - age_days / 10))

    def to_dict(self) -> dict:
        return {
            "service_type": self.service_type.value,
            "provider": self.provider,
            "route": self.route,
            "currency": self.currency,
            "points": len(self.points),
            "first_seen": self.points[0].timestamp.isoformat() if self.points else None,
            "last_seen": self.points[-1].timestamp.isoformat() if self.points else None,
            "statistics": self.statistics.to_dict(),
        }


class PriceHistoryStore:
    """Process-local append-and-prune store of price points."""

    def __init__(self, window_days: int | None = None):
        self.window = timedelta(days=window_days or settings.deal_history_days)
        self._records: dict[str, PriceHistoryRecord] = {}

    @staticmethod
    def key(service_type: ServiceType, provider: str, route: str) -> str:
        return f"{service_type.value}_{provider}_{route}"

    def get(self, service_type: ServiceType, provider: str, route: str) -> PriceHistoryRecord | None:
        return self._records.get(self.key(service_type, provider, route))

    def records(self, service_type: ServiceType | None = None) -> list[PriceHistoryRecord]:
        return [r for r in self._records.values() if service_type is None or r.service_type == service_type]

    def add_point(
        self,
        service_type: ServiceType,
        provider: str,
        route: str,
        price: float,
        currency: str = "USD",
        timestamp: datetime | None = None,
        available: bool = True,
        demand: str = "medium",
    ) -> PriceHistoryRecord:
        """Append a point, prune to the rolling window and recompute statistics."""
        now = timestamp or datetime.now(timezone.utc)
        key = self.key(service_type, provider, route)
        record = self._records.get(key)
        if record is None:
            record = PriceHistoryRecord(service_type=service_type, provider=provider, route=route, currency=currency)
            self._records[key] = record

        point = PricePoint(timestamp=now, price=price, available=available, demand=demand)
        index = bisect.bisect_right([p.timestamp for p in record.points], now)
        record.points.insert(index, point)

        cutoff = record.points[-1].timestamp - self.window
        record.points = [p for p in record.points if p.timestamp >= cutoff]
        record.recompute(record.points[-1].timestamp)
        return record

    def clear(self):
        self._records.clear()


# --- Grading helpers ---

def grade_severity(percentage: float, bounds: tuple[float, float, float, float]) -> DealSeverity:
    """One tier per boundary strictly exceeded, capped at exceptional."""
    exceeded = sum(1 for bound in bounds if percentage > bound)
    return SEVERITY_TIERS[min(exceeded, len(SEVERITY_TIERS) - 1)]


def grade_rarity(percentage: float, volatility: float) -> DealRarity:
    # bigger discount on a normally stable price = rarer
    score = percentage * (1 + 1 / max(volatility, 0.1))
    if score >= 60:
        return DealRarity.ULTRA_RARE
    if score >= 40:
        return DealRarity.RARE
    if score >= 20:
        return DealRarity.UNCOMMON
    return DealRarity.COMMON


def alert_urgency(deal: Deal) -> AlertUrgency:
    if deal.severity == DealSeverity.EXCEPTIONAL or deal.deal_type == DealType.ERROR_FARE:
        return AlertUrgency.CRITICAL
    if deal.severity == DealSeverity.SIGNIFICANT or deal.rarity == DealRarity.ULTRA_RARE:
        return AlertUrgency.HIGH
    if deal.severity == DealSeverity.MODERATE or deal.rarity == DealRarity.RARE:
        return AlertUrgency.MEDIUM
    return AlertUrgency.LOW


def offer_route(offer) -> str:
    """History route for an offer when the caller does not name one."""
    if isinstance(offer, (FlightOffer, TransportJourney)):
        return f"{offer.segments[0].origin}-{offer.segments[-1].destination}"
    if isinstance(offer, HotelOffer):
        return offer.hotel.id
    if isinstance(offer, CarRentalOffer):
        return f"{offer.pickup_location}-{offer.vehicle.category.value}"
    raise TypeError(f"Unsupported offer type: {type(offer).__name__}")


def _travel_start(offer) -> datetime | None:
    if isinstance(offer, FlightOffer):
        return offer.departure_time
    if isinstance(offer, HotelOffer):
        return datetime.combine(offer.check_in, time.min, tzinfo=timezone.utc)
    return None


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


# --- Detector ---

class DealDetector:
    """Runs every rule over an offer batch, then records the batch into history."""

    def __init__(self, store: PriceHistoryStore | None = None, catalog: Catalog | None = None):
        self.store = store or price_history_store
        self._catalog = catalog or load_catalog()

    def analyze(
        self,
        offers: list,
        service_type: ServiceType,
        route: str | None = None,
        now: datetime | None = None,
        user_id: str | None = None,
        record: bool = True,
    ) -> DealAnalysis:
        now = _aware(now or datetime.now(timezone.utc))
        deals = self.detect(offers, service_type, route, now)
        if record:
            self.record_prices(offers, service_type, route, now)

        alerts = [self.create_alert(d, user_id, now) for d in deals[:settings.deal_alert_limit]]
        return DealAnalysis(deals=deals, alerts=alerts, insights=self._insights(deals))

    def detect(self, offers: list, service_type: ServiceType, route: str | None, now: datetime) -> list[Deal]:
        found: list[Deal] = []
        for offer in offers:
            offer_key_route = route or offer_route(offer)
            history = self.store.get(service_type, offer.provider, offer_key_route)
            for rule in (
                self._price_drop,
                self._error_fare,
            ):
                deal = rule(offer, service_type, offer_key_route, history, now)
                if deal:
                    found.append(deal)
            for rule in (self._flash_sale, self._last_minute, self._seasonal):
                deal = rule(offer, service_type, offer_key_route, now)
                if deal:
                    found.append(deal)
            deal = self._competitor_beat(offer, offers, service_type, offer_key_route, now)
            if deal:
                found.append(deal)

        # dedup on (service, provider, offer, type)
        seen = set()
        unique = []
        for deal in found:
            key = (deal.service_type, deal.provider, deal.offer_id, deal.deal_type)
            if key in seen:
                continue
            seen.add(key)
            unique.append(deal)
        unique.sort(key=lambda d: d.savings.percentage, reverse=True)
        if unique:
            logger.info(f"Detected {len(unique)} {service_type.value} deals across {len(offers)} offers")
        return unique

    def record_prices(self, offers: list, service_type: ServiceType, route: str | None, now: datetime):
        for offer in offers:
            self.store.add_point(
                service_type,
                offer.provider,
                route or offer_route(offer),
                offer.price.amount,
                currency=offer.price.currency,
                timestamp=now,
            )

    def _deal(
        self,
        deal_type: DealType,
        offer,
        service_type: ServiceType,
        route: str,
        now: datetime,
        **fields,
    ) -> Deal:
        return Deal(
            id=f"{deal_type.value}_{offer.id}_{int(now.timestamp() * 1000)}",
            service_type=service_type,
            provider=offer.provider,
            offer_id=offer.id,
            route=route,
            deal_type=deal_type,
            current_price=offer.price.amount,
            **fields,
        )

    # --- History rules ---

    def _price_drop(self, offer, service_type, route, history: PriceHistoryRecord | None, now) -> Deal | None:
        if history is None or len(history.points) < PRICE_DROP_MIN_POINTS:
            return None
        recent = history.prices[-PRICE_DROP_MIN_POINTS:]
        recent_average = sum(recent) / len(recent)
        current = offer.price.amount
        drop = (recent_average - current) / recent_average * 100 if recent_average else 0.0
        if drop < PRICE_DROP_THRESHOLD:
            return None

        return self._deal(
            DealType.PRICE_DROP, offer, service_type, route, now,
            severity=grade_severity(drop, PRICE_DROP_BOUNDS),
            title=f"{round(drop)}% Price Drop",
            description=f"Price dropped from ${recent_average:.2f} to ${current:.2f}",
            original_price=round(recent_average, 2),
            savings=DealSavings(amount=round(recent_average - current, 2), percentage=round(drop, 2)),
            valid_until=offer.validity.valid_until,
            conditions=["Subject to availability", "Prices may change"],
            confidence=min(95.0, 60 + (drop - PRICE_DROP_THRESHOLD) * 2),
            rarity=grade_rarity(drop, history.statistics.volatility),
            metadata={"historical_low": current <= history.statistics.min_price * 1.05},
        )

    def _error_fare(self, offer, service_type, route, history: PriceHistoryRecord | None, now) -> Deal | None:
        if service_type != ServiceType.FLIGHT:
            return None
        if history is None or len(history.points) < ERROR_FARE_MIN_POINTS:
            return None
        average = history.statistics.mean_price
        current = offer.price.amount
        discount = (average - current) / average * 100 if average else 0.0
        if discount < ERROR_FARE_THRESHOLD:
            return None

        return self._deal(
            DealType.ERROR_FARE, offer, service_type, route, now,
            severity=DealSeverity.EXCEPTIONAL,
            title=f"Possible Error Fare: {round(discount)}% Off",
            description="Extremely low price - possible error fare or mistake",
            original_price=round(average, 2),
            savings=DealSavings(amount=round(average - current, 2), percentage=round(discount, 2)),
            valid_until=offer.validity.valid_until,
            conditions=[
                "Book immediately",
                "May be cancelled by airline",
                "Price likely to be corrected",
            ],
            confidence=60.0,
            rarity=DealRarity.ULTRA_RARE,
            metadata={"historical_low": True, "limited_quantity": True},
        )

    # --- Offer rules ---

    @staticmethod
    def _advertised(offer, discount: float) -> tuple[float, float]:
        """(original price, savings amount) implied by an advertised discount."""
        current = offer.price.amount
        original = current / (1 - discount / 100) if discount < 100 else current
        return round(original, 2), round(current * discount / (100 - discount), 2) if discount < 100 else 0.0

    def _flash_sale(self, offer, service_type, route, now) -> Deal | None:
        discount = offer.discount_percentage
        indicators = [
            offer.is_flash_sale,
            _aware(offer.validity.valid_until) - now < timedelta(hours=24),
            discount > 30,
        ]
        if sum(indicators) < 2 or discount <= FLASH_SALE_MIN_DISCOUNT:
            return None

        original, amount = self._advertised(offer, discount)
        return self._deal(
            DealType.FLASH_SALE, offer, service_type, route, now,
            severity=grade_severity(discount, FLASH_SALE_BOUNDS),
            title=f"Flash Sale: {discount:g}% Off",
            description=f"Limited-time flash sale with {discount:g}% discount",
            original_price=original,
            savings=DealSavings(amount=amount, percentage=discount),
            valid_until=offer.validity.valid_until,
            conditions=["Limited time offer", "Subject to availability", "May sell out quickly"],
            confidence=85.0,
            rarity=DealRarity.RARE,
            metadata={"flash_sale": True, "limited_quantity": True},
        )

    def _last_minute(self, offer, service_type, route, now) -> Deal | None:
        window = LAST_MINUTE_DAYS.get(service_type)
        start = _travel_start(offer)
        if window is None or start is None:
            return None
        days = math.ceil((_aware(start) - now).total_seconds() / 86400)
        discount = offer.discount_percentage
        if not 0 < days <= window or discount < LAST_MINUTE_MIN_DISCOUNT:
            return None

        original, amount = self._advertised(offer, discount)
        return self._deal(
            DealType.LAST_MINUTE, offer, service_type, route, now,
            severity=grade_severity(discount, LAST_MINUTE_BOUNDS),
            title=f"Last-Minute Deal: {days} Days Away",
            description=f"Save {discount:g}% on {service_type.value} departing in {days} days",
            original_price=original,
            savings=DealSavings(amount=amount, percentage=discount),
            valid_until=offer.validity.valid_until,
            conditions=["Imminent departure", "Limited availability", "Non-refundable"],
            confidence=75 + min(20.0, discount),
            rarity=DealRarity.ULTRA_RARE if days <= 1 else DealRarity.RARE,
            metadata={"last_minute": True, "limited_quantity": True},
        )

    def _seasonal(self, offer, service_type, route, now) -> Deal | None:
        pattern = self._catalog.seasonal_pattern(now.month)
        if pattern is None or service_type not in pattern.services:
            return None
        discount = offer.discount_percentage
        if discount <= 0 or discount < pattern.discount * SEASONAL_SHARE:
            return None

        original, amount = self._advertised(offer, discount)
        return self._deal(
            DealType.SEASONAL, offer, service_type, route, now,
            severity=grade_severity(discount, SEASONAL_BOUNDS),
            title=f"{pattern.name}: {discount:g}% Off",
            description=f"Special seasonal pricing for {pattern.name.lower()}",
            original_price=original,
            savings=DealSavings(amount=amount, percentage=discount),
            valid_until=offer.validity.valid_until,
            conditions=["Seasonal offer", "Limited time", "Subject to availability"],
            confidence=80.0,
            rarity=DealRarity.UNCOMMON,
            metadata={"seasonal_discount": True},
        )

    def _competitor_beat(self, offer, batch: list, service_type, route, now) -> Deal | None:
        competitors = [o for o in batch if o.provider != offer.provider]
        if not competitors:
            return None
        cheapest = min(competitors, key=lambda o: o.price.amount)
        gap = cheapest.price.amount - offer.price.amount
        pct = gap / cheapest.price.amount * 100 if cheapest.price.amount else 0.0
        if pct < COMPETITOR_MIN_GAP:
            return None

        return self._deal(
            DealType.COMPETITOR_BEAT, offer, service_type, route, now,
            severity=grade_severity(pct, COMPETITOR_BOUNDS),
            title=f"Beats Competitors by {round(pct)}%",
            description=f"${gap:.2f} cheaper than next best option from {cheapest.provider}",
            original_price=cheapest.price.amount,
            savings=DealSavings(amount=round(gap, 2), percentage=round(pct, 2)),
            valid_until=offer.validity.valid_until,
            conditions=["Compare terms carefully", "Check cancellation policies"],
            confidence=85.0,
            rarity=DealRarity.RARE if pct > 15 else DealRarity.UNCOMMON,
            metadata={"competitor_beat": True},
        )

    # --- Alerts and insights ---

    def create_alert(self, deal: Deal, user_id: str | None, now: datetime) -> DealAlert:
        if deal.deal_type == DealType.PRICE_DROP:
            alert_type = "price_drop"
        elif deal.valid_until and _aware(deal.valid_until) - now < EXPIRING_SOON:
            alert_type = "expiring_soon"
        else:
            alert_type = "new_deal"

        return DealAlert(
            user_id=user_id,
            deal_id=deal.id,
            alert_type=alert_type,
            message=(
                f"{deal.title} - Save ${deal.savings.amount:.2f} ({deal.savings.percentage:.1f}%) "
                f"on {deal.service_type.value} with {deal.provider}"
            ),
            urgency=alert_urgency(deal),
            created_at=now,
            expires_at=deal.valid_until,
        )

    def _insights(self, deals: list[Deal]) -> DealInsights:
        if not deals:
            return DealInsights()
        best = deals[0]
        rare = sum(1 for d in deals if d.rarity in (DealRarity.RARE, DealRarity.ULTRA_RARE))

        actions = [f"Book the {best.deal_type.value} deal with {best.provider} soon"]
        if rare:
            actions.append(f"{rare} rare deals found - act quickly")
        if any(d.deal_type == DealType.ERROR_FARE for d in deals):
            actions.append("Error fare detected - book immediately before correction")

        return DealInsights(
            total_deals_found=len(deals),
            best_deal=best,
            average_savings=round(sum(d.savings.percentage for d in deals) / len(deals), 2),
            rare_deals_count=rare,
            recommended_actions=actions,
        )


price_history_store = PriceHistoryStore()
deal_detector = DealDetector(price_history_store)
