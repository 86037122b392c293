import pytest

from tripmerge.schemas.common import ClusterAlgorithm
from tripmerge.services.geo import centroid, haversine_km
from tripmerge.services.hotel_clustering import (
    STRATEGIES,
    ClusteringOptions,
    DensityStrategy,
    GeographicClusterer,
    KMeansPlusPlusStrategy,
)

from tests.factories import make_hotel

OLD_TOWN = (48.8566, 2.3522)
NORTH = (48.8800, 2.3000)
OUTLIER = (48.9500, 2.5000)
OFFSETS = ((0, 0), (0.001, 0), (0, 0.001), (0.001, 0.001))

clusterer = GeographicClusterer()


def _group(prefix, center, neighborhood, nightly):
    return [
        make_hotel(
            f"{prefix}{i}",
            nightly=nightly + i * 10,
            lat=center[0] + dlat,
            lon=center[1] + dlon,
            neighborhood=neighborhood,
            rating=7.5 + i * 0.5,
            amenities=("wifi", "business_center") if i == 0 else ("pool",),
        )
        for i, (dlat, dlon) in enumerate(OFFSETS)
    ]


def _hotels(with_outlier=True):
    hotels = _group("a", OLD_TOWN, "Old Town", 80) + _group("b", NORTH, "Waterfront", 220)
    if with_outlier:
        hotels.append(make_hotel("z", nightly=400, lat=OUTLIER[0], lon=OUTLIER[1], stars=5))
    return hotels


def _options(algorithm, **kw):
    kw.setdefault("max_radius_m", 1000)
    kw.setdefault("min_hotels_per_cluster", 2)
    kw.setdefault("max_clusters", 8)
    return ClusteringOptions(algorithm=algorithm, **kw)


def test_haversine():
    # Paris → London is about 344 km
    assert haversine_km(48.8566, 2.3522, 51.5074, -0.1278) == pytest.approx(344, abs=2)
    assert haversine_km(10, 10, 10, 10) == 0
    assert centroid([(0, 0), (2, 4)]) == (1, 2)


@pytest.mark.parametrize("algorithm", list(ClusterAlgorithm))
def test_accepted_clusters_respect_radius_and_size(algorithm):
    result = clusterer.cluster(_hotels(), _options(algorithm))

    seen = set()
    for cluster in result.clusters:
        assert cluster.count >= 2
        assert cluster.radius_m <= 1000
        for offer in cluster.offers:
            distance_m = haversine_km(
                cluster.centroid[0], cluster.centroid[1], offer.hotel.latitude, offer.hotel.longitude,
            ) * 1000
            assert distance_m <= 1000
            assert offer.id not in seen
            seen.add(offer.id)
    assert len(result.clusters) <= 8
    assert result.unclustered == 9 - len(seen)


def test_density_clusters_exclude_noise():
    result = clusterer.cluster(_hotels(), _options(ClusterAlgorithm.DBSCAN))

    assert [c.count for c in result.clusters] == [4, 4]
    assert result.unclustered == 1
    assert [c.area_name for c in result.clusters] == ["Old Town Area", "Waterfront Area"]
    assert [c.id for c in result.clusters] == ["cluster_1", "cluster_2"]


def test_hierarchical_stops_at_radius():
    result = clusterer.cluster(_hotels(), _options(ClusterAlgorithm.HIERARCHICAL, max_clusters=2))

    assert sorted(c.count for c in result.clusters) == [4, 4]
    assert result.unclustered == 1


def test_kmeans_finds_two_groups():
    result = clusterer.cluster(_hotels(with_outlier=False), _options(ClusterAlgorithm.KMEANS, min_hotels_per_cluster=4))

    assert [c.count for c in result.clusters] == [4, 4]
    first = result.clusters[0]
    assert {o.id for o in first.offers} == {"a0", "a1", "a2", "a3"}
    assert first.price_range == (80, 110)
    assert first.average_price == 95


def test_kmeans_k_and_seed_determinism():
    points = [(48.85 + i * 0.0001, 2.35) for i in range(7)]
    options = _options(ClusterAlgorithm.KMEANS, min_hotels_per_cluster=3)
    groups = KMeansPlusPlusStrategy().assign_clusters(points, options)

    assert len(groups) <= 2  # min(8, 7 // 3)
    assert groups == KMeansPlusPlusStrategy().assign_clusters(points, options)
    assert KMeansPlusPlusStrategy().assign_clusters(points[:2], options) == []


def test_density_neighbourhood_excludes_self():
    # two points within eps: each has one neighbour, so minPts=2 makes both noise
    points = [(48.85, 2.35), (48.8501, 2.35)]
    assert DensityStrategy().assign_clusters(points, _options(ClusterAlgorithm.DBSCAN)) == []


def test_radius_limit_rejects_wide_groups():
    result = clusterer.cluster(_hotels(), _options(ClusterAlgorithm.KMEANS, max_radius_m=10, max_clusters=2))
    assert result.clusters == []
    assert result.unclustered == 9


def test_hotels_without_coordinates_are_unclustered():
    hotels = _hotels(with_outlier=False) + [make_hotel("nowhere")]
    result = clusterer.cluster(hotels, _options(ClusterAlgorithm.DBSCAN))

    assert sum(c.count for c in result.clusters) == 8
    assert result.unclustered == 1
    assert sum(b.count for b in result.price_bands) == 9


def test_recommendations_and_insights():
    result = clusterer.cluster(_hotels(), _options(ClusterAlgorithm.DBSCAN))

    recs = result.recommendations
    assert set(recs) == {
        "best_value", "highest_rated", "most_popular", "business_friendly", "family_friendly", "luxury",
    }
    assert all(len(v) <= 5 for v in recs.values())
    assert {o.id for o in recs["business_friendly"]} == {"a0", "b0"}
    assert recs["luxury"][0].id == "z"

    insights = result.insights
    assert insights["total_clusters"] == 2
    assert insights["average_cluster_size"] == 4.0
    assert insights["location_spread"]["concentrated"] is False
    assert insights["location_spread"]["main_areas"] == ["Old Town Area", "Waterfront Area"]
    assert sum(insights["price_distribution"].values()) == pytest.approx(100, abs=1)


def test_to_dict_is_serialisable():
    data = clusterer.cluster(_hotels(), _options(ClusterAlgorithm.DBSCAN)).to_dict()
    assert data["algorithm"] == "dbscan"
    assert data["clusters"][0]["offer_ids"] == ["a0", "a1", "a2", "a3"]
    assert data["unclustered"] == 1


def test_every_algorithm_has_a_strategy():
    assert set(STRATEGIES) == set(ClusterAlgorithm)


def test_options_from_settings_overrides():
    options = ClusteringOptions.from_settings(algorithm=ClusterAlgorithm.HIERARCHICAL, max_clusters=None)
    assert options.algorithm == ClusterAlgorithm.HIERARCHICAL
    assert options.max_clusters == 8
    assert options.max_radius_m == 2000
