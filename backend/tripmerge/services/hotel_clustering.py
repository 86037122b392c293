"""Hotel clustering — geographic groupings of hotel offers plus price bands.

Three interchangeable strategies assign points to groups:
- k-means++ (seeded, capped at 100 iterations)
- density-based (DBSCAN-style neighbour expansion, noise excluded)
- hierarchical agglomerative (centroid linkage)

Whatever a strategy returns, the clusterer enforces the same acceptance rules:
minimum member count, and every member within max_radius_m of the centroid.
All distances are haversine, in kilometres internally.
"""

import logging
import random
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field, replace

from tripmerge.config import settings
from tripmerge.schemas.common import ClusterAlgorithm
from tripmerge.schemas.offers import HotelOffer
from tripmerge.services.geo import centroid, haversine_km
from tripmerge.services.price_bands import (
    BUDGET,
    LUXURY,
    MID_RANGE,
    PriceBand,
    PriceBandClusterer,
    average_rating,
    band_label,
    nightly_price,
    price_band_clusterer,
    top_amenities,
)

logger = logging.getLogger(__name__)

Point = tuple[float, float]

MAX_KMEANS_ITERATIONS = 100
CONCENTRATED_SPREAD_KM = 5.0
RECOMMENDATION_LIMIT = 5
LUXURY_MIN_STARS = 4


@dataclass(frozen=True)
class ClusteringOptions:
    algorithm: ClusterAlgorithm = ClusterAlgorithm.KMEANS
    max_radius_m: float = 2000.0
    min_hotels_per_cluster: int = 2
    max_clusters: int = 8
    budget_threshold: float = 100.0
    luxury_threshold: float = 300.0
    seed: int = 42

    @classmethod
    def from_settings(cls, **overrides) -> "ClusteringOptions":
        base = cls(
            algorithm=ClusterAlgorithm(settings.cluster_algorithm),
            max_radius_m=settings.cluster_max_radius_m,
            min_hotels_per_cluster=settings.cluster_min_hotels,
            max_clusters=settings.cluster_max_clusters,
            budget_threshold=settings.price_band_budget_threshold,
            luxury_threshold=settings.price_band_luxury_threshold,
        )
        return replace(base, **{k: v for k, v in overrides.items() if v is not None})


def _distance(a: Point, b: Point) -> float:
    return haversine_km(a[0], a[1], b[0], b[1])


class ClusteringStrategy(ABC):
    @abstractmethod
    def assign_clusters(self, points: list[Point], options: ClusteringOptions) -> list[list[int]]:
        """Group point indices; indices left out of every group are unclustered."""
        ...


class KMeansPlusPlusStrategy(ClusteringStrategy):
    def assign_clusters(self, points, options) -> list[list[int]]:
        n = len(points)
        k = min(options.max_clusters, n // options.min_hotels_per_cluster)
        if k < 1:
            return []

        rng = random.Random(options.seed)
        centroids = [points[rng.randrange(n)]]
        # k-means++ seeding: weight candidates by squared distance to the nearest chosen centroid
        while len(centroids) < k:
            weights = [min(_distance(p, c) for c in centroids) ** 2 for p in points]
            total = sum(weights)
            if total == 0:
                break
            target = rng.random() * total
            cumulative = 0.0
            for i, w in enumerate(weights):
                cumulative += w
                if cumulative >= target:
                    centroids.append(points[i])
                    break

        assignments: list[int] = []
        for _ in range(MAX_KMEANS_ITERATIONS):
            updated = [
                min(range(len(centroids)), key=lambda c: _distance(p, centroids[c]))
                for p in points
            ]
            if updated == assignments:
                break
            assignments = updated
            for c in range(len(centroids)):
                members = [points[i] for i in range(n) if assignments[i] == c]
                if members:
                    centroids[c] = centroid(members)

        groups = [[i for i in range(n) if assignments[i] == c] for c in range(len(centroids))]
        return [g for g in groups if g]


class DensityStrategy(ClusteringStrategy):
    """DBSCAN with eps = max radius and minPts = minimum hotels per cluster."""

    NOISE = -1

    def assign_clusters(self, points, options) -> list[list[int]]:
        n = len(points)
        eps_km = options.max_radius_m / 1000
        min_pts = options.min_hotels_per_cluster

        def neighbours(i: int) -> list[int]:
            return [j for j in range(n) if j != i and _distance(points[i], points[j]) <= eps_km]

        labels: list[int | None] = [None] * n
        cluster_id = 0
        for i in range(n):
            if labels[i] is not None:
                continue
            seeds = neighbours(i)
            if len(seeds) < min_pts:
                labels[i] = self.NOISE
                continue
            labels[i] = cluster_id
            queue = list(seeds)
            while queue:
                j = queue.pop(0)
                if labels[j] == self.NOISE:
                    labels[j] = cluster_id  # border point
                if labels[j] is not None:
                    continue
                labels[j] = cluster_id
                expansion = neighbours(j)
                if len(expansion) >= min_pts:
                    queue.extend(expansion)
            cluster_id += 1

        return [[i for i in range(n) if labels[i] == c] for c in range(cluster_id)]


class HierarchicalStrategy(ClusteringStrategy):
    """Agglomerative merging of the two closest centroids."""

    def assign_clusters(self, points, options) -> list[list[int]]:
        groups = [[i] for i in range(len(points))]
        centers = list(points)

        while len(groups) > options.max_clusters:
            best = None
            for a in range(len(groups)):
                for b in range(a + 1, len(groups)):
                    d = _distance(centers[a], centers[b])
                    if best is None or d < best[0]:
                        best = (d, a, b)
            if best is None or best[0] * 1000 > options.max_radius_m:
                break
            _, a, b = best
            groups[a] = groups[a] + groups[b]
            centers[a] = centroid([points[i] for i in groups[a]])
            del groups[b]
            del centers[b]

        return groups


STRATEGIES: dict[ClusterAlgorithm, type[ClusteringStrategy]] = {
    ClusterAlgorithm.KMEANS: KMeansPlusPlusStrategy,
    ClusterAlgorithm.DBSCAN: DensityStrategy,
    ClusterAlgorithm.HIERARCHICAL: HierarchicalStrategy,
}


@dataclass
class HotelCluster:
    id: str
    centroid: Point
    radius_m: float
    area_name: str
    average_price: float
    price_range: tuple[float, float]
    average_rating: float
    star_distribution: dict[str, int]
    top_amenities: list[str]
    offers: list[HotelOffer] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.offers)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "centroid": {"latitude": round(self.centroid[0], 6), "longitude": round(self.centroid[1], 6)},
            "radius_m": self.radius_m,
            "area_name": self.area_name,
            "count": self.count,
            "average_price": self.average_price,
            "price_range": {"min": self.price_range[0], "max": self.price_range[1]},
            "average_rating": self.average_rating,
            "star_distribution": self.star_distribution,
            "top_amenities": self.top_amenities,
            "offer_ids": [o.id for o in self.offers],
        }


@dataclass
class ClusteringResult:
    algorithm: ClusterAlgorithm
    clusters: list[HotelCluster]
    price_bands: list[PriceBand]
    unclustered: int
    recommendations: dict[str, list[HotelOffer]]
    insights: dict

    def to_dict(self) -> dict:
        return {
            "algorithm": self.algorithm.value,
            "clusters": [c.to_dict() for c in self.clusters],
            "price_bands": [b.to_dict() for b in self.price_bands],
            "unclustered": self.unclustered,
            "recommendations": {
                name: [o.model_dump(mode="json") for o in offers]
                for name, offers in self.recommendations.items()
            },
            "insights": self.insights,
        }


def _coordinates(offer: HotelOffer) -> Point:
    return offer.hotel.latitude, offer.hotel.longitude


def _area_name(offers: list[HotelOffer], fallback: str) -> str:
    areas = Counter(o.hotel.neighborhood for o in offers if o.hotel.neighborhood)
    if not areas:
        return fallback
    return f"{areas.most_common(1)[0][0]} Area"


class GeographicClusterer:
    """Groups hotel offers by location and summarises each group."""

    def __init__(self, strategies: dict[ClusterAlgorithm, type[ClusteringStrategy]] | None = None,
                 price_bands: PriceBandClusterer | None = None):
        self._strategies = strategies or STRATEGIES
        self._price_bands = price_bands or price_band_clusterer

    def cluster(self, offers: list[HotelOffer], options: ClusteringOptions | None = None) -> ClusteringResult:
        options = options or ClusteringOptions.from_settings()
        located = [
            o for o in offers
            if o.hotel.latitude is not None and o.hotel.longitude is not None
        ]
        if len(located) < len(offers):
            logger.debug(f"Skipping {len(offers) - len(located)} hotels without coordinates")

        points = [_coordinates(o) for o in located]
        strategy = self._strategies[options.algorithm]()
        groups = strategy.assign_clusters(points, options) if points else []

        accepted: list[tuple[list[HotelOffer], Point, float]] = []
        for group in groups:
            if len(group) < options.min_hotels_per_cluster:
                continue
            center = centroid([points[i] for i in group])
            radius_m = max(_distance(center, points[i]) for i in group) * 1000
            if radius_m > options.max_radius_m:
                logger.debug(f"Rejected {len(group)}-hotel cluster: radius {radius_m:.0f}m > {options.max_radius_m:.0f}m")
                continue
            accepted.append(([located[i] for i in group], center, radius_m))

        accepted.sort(key=lambda a: (-len(a[0]), a[1]))
        accepted = accepted[:options.max_clusters]

        clusters = [
            self._summarise(f"cluster_{n + 1}", members, center, radius_m)
            for n, (members, center, radius_m) in enumerate(accepted)
        ]
        clustered = sum(c.count for c in clusters)

        return ClusteringResult(
            algorithm=options.algorithm,
            clusters=clusters,
            price_bands=self._price_bands.cluster(offers, options.budget_threshold, options.luxury_threshold),
            unclustered=len(offers) - clustered,
            recommendations=self.recommendations(offers, options),
            insights=self.insights(offers, clusters, options),
        )

    def _summarise(self, cluster_id: str, members: list[HotelOffer], center: Point, radius_m: float) -> HotelCluster:
        prices = [nightly_price(o) for o in members]
        stars = Counter(str(int(o.hotel.star_rating)) for o in members if o.hotel.star_rating)
        return HotelCluster(
            id=cluster_id,
            centroid=center,
            radius_m=round(radius_m, 1),
            area_name=_area_name(members, f"Area {cluster_id.split('_')[-1]}"),
            average_price=round(sum(prices) / len(prices), 2),
            price_range=(round(min(prices), 2), round(max(prices), 2)),
            average_rating=average_rating(members),
            star_distribution=dict(sorted(stars.items())),
            top_amenities=top_amenities(members),
            offers=members,
        )

    def recommendations(self, offers: list[HotelOffer], options: ClusteringOptions) -> dict[str, list[HotelOffer]]:
        limit = RECOMMENDATION_LIMIT

        def by_rating(pool: list[HotelOffer]) -> list[HotelOffer]:
            return sorted(pool, key=lambda o: (-(o.hotel.guest_rating or 0), o.id))[:limit]

        rated = [o for o in offers if o.hotel.guest_rating]
        # value = rating/10 per $100 a night
        best_value = sorted(
            rated,
            key=lambda o: (-((o.hotel.guest_rating / 10) / (nightly_price(o) / 100 or 1)), o.id),
        )[:limit]
        business = [
            o for o in offers
            if "wifi" in o.hotel.amenities and ({"business_center", "concierge"} & set(o.hotel.amenities))
        ]
        family = [
            o for o in offers
            if {"pool", "family_rooms"} & set(o.hotel.amenities)
            or o.hotel.property_type == "resort"
            or any(r.max_occupancy > 2 for r in o.rooms)
        ]
        luxury = [
            o for o in offers
            if (o.hotel.star_rating or 0) >= LUXURY_MIN_STARS
            or nightly_price(o) >= options.luxury_threshold
            or {"spa", "concierge"} <= set(o.hotel.amenities)
        ]

        return {
            "best_value": best_value,
            "highest_rated": by_rating(offers),
            "most_popular": sorted(offers, key=lambda o: (-o.hotel.review_count, o.id))[:limit],
            "business_friendly": by_rating(business),
            "family_friendly": by_rating(family),
            "luxury": sorted(luxury, key=lambda o: (-(o.hotel.star_rating or 0), o.id))[:limit],
        }

    def insights(self, offers: list[HotelOffer], clusters: list[HotelCluster], options: ClusteringOptions) -> dict:
        n = len(offers)
        if n == 0:
            return {
                "total_clusters": 0,
                "average_cluster_size": 0.0,
                "price_distribution": {"budget": 0, "mid_range": 0, "luxury": 0},
                "location_spread": {"concentrated": False, "main_areas": [], "max_distance_km": 0.0},
                "rating_distribution": {"excellent": 0, "very_good": 0, "good": 0, "fair": 0},
            }

        labels = Counter(
            band_label(nightly_price(o), options.budget_threshold, options.luxury_threshold) for o in offers
        )

        located = [_coordinates(o) for o in offers if o.hotel.latitude is not None and o.hotel.longitude is not None]
        spread_km = 0.0
        if located:
            center = centroid(located)
            spread_km = max(_distance(center, p) for p in located)

        ratings = Counter()
        for o in offers:
            score = o.hotel.guest_rating or 0
            if score >= 9:
                ratings["excellent"] += 1
            elif score >= 8:
                ratings["very_good"] += 1
            elif score >= 7:
                ratings["good"] += 1
            elif score >= 6:
                ratings["fair"] += 1

        return {
            "total_clusters": len(clusters),
            "average_cluster_size": round(sum(c.count for c in clusters) / len(clusters), 1) if clusters else 0.0,
            "price_distribution": {
                "budget": round(labels[BUDGET] / n * 100),
                "mid_range": round(labels[MID_RANGE] / n * 100),
                "luxury": round(labels[LUXURY] / n * 100),
            },
            "location_spread": {
                "concentrated": bool(located) and spread_km < CONCENTRATED_SPREAD_KM,
                "main_areas": [c.area_name for c in clusters],
                "max_distance_km": round(spread_km, 2),
            },
            "rating_distribution": {
                key: round(ratings[key] / n * 100)
                for key in ("excellent", "very_good", "good", "fair")
            },
        }


geographic_clusterer = GeographicClusterer()
