# tests/test_places.py
import httpx

from conftest import run
from route_drawing.models.geo import GeoPoint
from route_drawing.services.places import PlacesSuggestionAdapter

FEATURES = {
    "type": "FeatureCollection",
    "features": [
        {"text": "Bree Street", "place_name": "Bree Street Taxi Rank, Johannesburg", "center": [28.0395, -26.2003]},
        {"text": "Baragwanath", "center": [27.9393, -26.2606]},
        {"place_name": "broken"},
    ],
}


def adapter(handler, token="pk.test"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PlacesSuggestionAdapter(
        access_token=token, base_url="https://mapbox.test", country="ZA", limit=5, client=client
    )


def test_suggest_parses_features_and_skips_malformed_ones():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=FEATURES)

    places = run(adapter(handler).suggest(" bree street ", proximity=GeoPoint(lon=28.0, lat=-26.2)))

    assert seen["path"] == "/geocoding/v5/mapbox.places/bree street.json"
    assert seen["params"]["country"] == "ZA"
    assert seen["params"]["limit"] == "5"
    assert seen["params"]["proximity"] == "28.0,-26.2"
    assert [p.name for p in places] == ["Bree Street Taxi Rank, Johannesburg", "Baragwanath"]
    assert places[1].position == GeoPoint(lon=27.9393, lat=-26.2606)
    assert places[0].raw_provider_record["text"] == "Bree Street"


def test_bbox_is_forwarded():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        return httpx.Response(200, json={"features": []})

    run(adapter(handler).suggest("rank", bbox=(27.8, -26.4, 28.2, -26.0)))
    assert seen["bbox"] == "27.8,-26.4,28.2,-26.0"


def test_blank_query_returns_nothing():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("blank queries are not sent")

    assert run(adapter(handler).suggest("   ")) == []


def test_failures_yield_empty_suggestions():
    assert run(adapter(lambda request: httpx.Response(503)).suggest("rank")) == []
    assert run(adapter(lambda request: httpx.Response(200, text="<html>")).suggest("rank")) == []
    assert run(adapter(lambda request: httpx.Response(200, json=[])).suggest("rank")) == []
    assert run(adapter(lambda request: httpx.Response(200, json=FEATURES), token=None).suggest("rank")) == []


def test_reverse_returns_first_feature():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["limit"] = request.url.params["limit"]
        return httpx.Response(200, json=FEATURES)

    place = run(adapter(handler).reverse(GeoPoint(lon=28.0395, lat=-26.2003)))

    assert seen["path"] == "/geocoding/v5/mapbox.places/28.0395,-26.2003.json"
    assert seen["limit"] == "1"
    assert place.name == "Bree Street Taxi Rank, Johannesburg"


def test_reverse_without_results():
    place = run(adapter(lambda request: httpx.Response(200, json={"features": []})).reverse(
        GeoPoint(lon=28.0, lat=-26.2)
    ))
    assert place is None
