"""
Test doubles for the HTTP session, the OpenAI client and the Places client.
"""

import json
from types import SimpleNamespace

import requests


class FakeResponse:
    def __init__(self, status_code=200, data=None, text="", content=b""):
        self.status_code = status_code
        self._data = data
        self.text = text or (json.dumps(data) if data is not None else "")
        self.content = content

    def json(self):
        if self._data is None:
            raise ValueError("no JSON body")
        return self._data

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


class FakeSession:
    """
    Routes requests by URL prefix. A route is a FakeResponse, a list of them
    (served in order, last one repeats), or a callable(call) -> FakeResponse.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def _dispatch(self, method, url, **kwargs):
        call = {"method": method, "url": url, **kwargs}
        self.calls.append(call)
        for prefix, route in self.routes.items():
            if url.startswith(prefix):
                if callable(route) and not isinstance(route, FakeResponse):
                    return route(call)
                if isinstance(route, list):
                    return route.pop(0) if len(route) > 1 else route[0]
                return route
        raise requests.exceptions.ConnectionError(f"no route for {url}")

    def get(self, url, **kwargs):
        return self._dispatch("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._dispatch("POST", url, **kwargs)


class FakeLLM:
    """
    Stands in for OpenAI(): chat.completions.create(**kwargs).

    replies is a list of strings/dicts served in order (last one repeats), or
    a callable(kwargs) -> str/dict. A reply that is an Exception is raised.
    """

    def __init__(self, replies):
        self.replies = replies
        self.calls = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if callable(self.replies):
            reply = self.replies(kwargs)
        else:
            reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            reply = json.dumps(reply)
        message = SimpleNamespace(content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakePlaces:
    """Duck-typed PlacesClient with canned answers."""

    def __init__(self, geocode=None, candidates=None, details=None, search=None, image="aW1n"):
        self.geocode_result = geocode
        self.candidates = candidates or []
        self.details = details or {}
        self.search_results = search or []
        self.image = image
        self.calls = []

    def geocode(self, address):
        self.calls.append(("geocode", address))
        return self.geocode_result

    def find_place(self, text, fields="place_id,name,formatted_address"):
        self.calls.append(("find_place", text))
        return self.candidates

    def place_details(self, place_id, fields):
        self.calls.append(("place_details", place_id))
        value = self.details.get(place_id, {})
        if isinstance(value, Exception):
            raise value
        return value

    def text_search(self, query, lat=None, lng=None, radius_m=None):
        self.calls.append(("text_search", query))
        if isinstance(self.search_results, Exception):
            raise self.search_results
        return self.search_results

    def fetch_image_base64(self, url):
        self.calls.append(("fetch_image", url))
        return self.image


def geocode_result(city="Austin", state="TX", lat=30.27, lng=-97.74):
    return {
        "formatted_address": f"100 Congress Ave, {city}, {state} 78701, USA",
        "geometry": {"location": {"lat": lat, "lng": lng}},
        "address_components": [
            {"long_name": city, "short_name": city, "types": ["locality", "political"]},
            {"long_name": "Texas", "short_name": state, "types": ["administrative_area_level_1", "political"]},
            {"long_name": "United States", "short_name": "US", "types": ["country", "political"]},
        ],
    }
