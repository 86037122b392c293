from datetime import date, datetime, time, timedelta, timezone

from fastapi.testclient import TestClient

from tripmerge.main import app

from tests.factories import make_flight, make_hotel, make_journey

client = TestClient(app)

IN_A_MONTH = date.today() + timedelta(days=30)


def _hotel_query(nights: int = 3) -> dict:
    return {
        "destination": {"name": "Paris", "code": "PAR", "latitude": 48.8566, "longitude": 2.3522},
        "check_in": IN_A_MONTH.isoformat(),
        "check_out": (IN_A_MONTH + timedelta(days=nights)).isoformat(),
    }


def test_health():
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "service": "tripmerge"}


def test_flight_search_falls_back_without_live_providers():
    body = {
        "query": {
            "origin": {"name": "New York", "code": "JFK"},
            "destination": {"name": "London", "code": "LHR"},
            "departure_date": IN_A_MONTH.isoformat(),
        },
        "options": {"max_results": 5},
    }
    resp = client.post("/api/search/flights", json=body)

    assert resp.status_code == 200
    data = resp.json()
    assert data["meta"]["fallback_used"] is True
    assert data["meta"]["service_type"] == "flight"
    assert 0 < len(data["offers"]) <= 5
    assert all(o["service_type"] == "flight" for o in data["offers"])


def test_car_rental_search():
    pickup = datetime.combine(IN_A_MONTH, time(10), tzinfo=timezone.utc)
    body = {
        "query": {
            "pickup_location": {"name": "Lyon", "code": "LYS"},
            "pickup_at": pickup.isoformat(),
            "dropoff_at": (pickup + timedelta(days=3)).isoformat(),
        },
    }
    resp = client.post("/api/search/car-rentals", json=body)

    assert resp.status_code == 200
    assert all(o["rental_days"] == 3 for o in resp.json()["offers"])


def test_invalid_hotel_stay_is_rejected():
    query = _hotel_query()
    query["check_out"] = (IN_A_MONTH - timedelta(days=1)).isoformat()
    resp = client.post("/api/search/hotels", json={"query": query})
    assert resp.status_code == 422


def test_unified_search():
    body = {
        "services": ["flight", "hotel"],
        "journey": {
            "origin": {"name": "New York", "code": "JFK"},
            "destination": {"name": "Paris", "code": "CDG", "latitude": 49.0097, "longitude": 2.5479},
            "departure_date": IN_A_MONTH.isoformat(),
            "return_date": (IN_A_MONTH + timedelta(days=4)).isoformat(),
        },
    }
    resp = client.post("/api/search/unified", json=body)

    assert resp.status_code == 200
    data = resp.json()
    assert data["meta"]["services_queried"] == ["flight", "hotel"]
    assert set(data["results"]) == {"flight", "hotel"}
    assert data["recommendations"]["best_overall"] is not None


def test_hotel_clusters():
    body = {"query": _hotel_query(), "clustering": {"algorithm": "dbscan", "max_radius_m": 5000}}
    resp = client.post("/api/hotels/clusters", json=body)

    assert resp.status_code == 200
    data = resp.json()
    assert data["algorithm"] == "dbscan"
    assert sum(b["count"] for b in data["price_bands"]) == data["total_hotels"]
    clustered = sum(len(c["offer_ids"]) for c in data["clusters"])
    assert clustered + data["unclustered"] <= data["total_hotels"]


def test_hotel_clusters_rejects_inverted_thresholds():
    body = {"query": _hotel_query(), "clustering": {"budget_threshold": 400, "luxury_threshold": 200}}
    resp = client.post("/api/hotels/clusters", json=body)
    assert resp.status_code == 400


def test_deal_analysis_and_history():
    offer = make_hotel("api-flash", nightly=60, provider="apitest", is_flash_sale=True, discount_percentage=40)
    body = {"service_type": "hotel", "offers": [offer.model_dump(mode="json")], "user_id": "u-1"}

    resp = client.post("/api/deals/analyze", json=body)

    assert resp.status_code == 200
    data = resp.json()
    assert "flash_sale" in [d["deal_type"] for d in data["deals"]]
    assert data["alerts"][0]["user_id"] == "u-1"
    assert data["insights"]["total_deals_found"] == len(data["deals"])

    history = client.get("/api/deals/history", params={"service_type": "hotel", "provider": "apitest"}).json()
    assert history["total"] == 1
    assert history["records"][0]["route"] == "h-api-flash"
    assert history["records"][0]["statistics"]["min_price"] == 60


def test_deal_analysis_rejects_mixed_services():
    body = {"service_type": "flight", "offers": [make_hotel("x").model_dump(mode="json")]}
    resp = client.post("/api/deals/analyze", json=body)
    assert resp.status_code == 400

    body = {"service_type": "flight", "offers": [make_flight("f").model_dump(mode="json")]}
    assert client.post("/api/deals/analyze", json=body).status_code == 200


def test_deal_analysis_rejects_journey_without_segments():
    journey = make_journey("t").model_dump(mode="json")
    journey["segments"] = []
    resp = client.post("/api/deals/analyze", json={"service_type": "transport", "offers": [journey]})
    assert resp.status_code == 422
