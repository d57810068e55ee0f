"""
Google Maps Platform client: Places text search, find place, place details,
geocoding, static map URLs, and image download.

Handles:
- Rate limiting with exponential backoff (OVER_QUERY_LIMIT, timeouts)
- Field masks on details requests
- Typed errors with remediation hints (REQUEST_DENIED, quota)
- Request counting and logging

Callers that are best-effort catch IntelError and degrade; stages let it
propagate.
"""

import time
import base64
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests

from .errors import ConfigMissingError, NotFoundError, RateLimitedError, UpstreamError

logger = logging.getLogger(__name__)

# API Configuration
TEXT_SEARCH_URL = "https://maps.googleapis.com/maps/api/place/textsearch/json"
FIND_PLACE_URL = "https://maps.googleapis.com/maps/api/place/findplacefromtext/json"
PLACE_DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
STATIC_MAP_URL = "https://maps.googleapis.com/maps/api/staticmap"

REQUEST_TIMEOUT = 30
MAX_RETRIES = 3          # Maximum retry attempts on failure
BACKOFF_FACTOR = 2       # Exponential backoff multiplier

DENIED_HINTS = [
    "Enable the Places API and Geocoding API for the key in Google Cloud Console",
    "Check that billing is enabled on the Google Cloud project",
    "Check API key restrictions (HTTP referrer keys are rejected by server-side calls)",
]


def google_maps_link(place_id: str) -> str:
    return f"https://www.google.com/maps/place/?q=place_id:{place_id}"


def static_map_url(lat: float, lng: float, api_key: Optional[str] = None,
                   zoom: int = 19, size: str = "600x400", maptype: str = "satellite") -> str:
    """Satellite map URL. Without api_key the URL is safe to persist; sign it at fetch time."""
    params = {"center": f"{lat},{lng}", "zoom": zoom, "size": size, "maptype": maptype}
    if api_key:
        params["key"] = api_key
    return f"{STATIC_MAP_URL}?{urlencode(params)}"


class PlacesClient:
    """
    Thin Google Maps Platform client over a requests.Session.

    Attributes:
        api_key: Google Maps API key
        request_count: Total API requests made
    """

    def __init__(self, api_key: Optional[str], session: Optional[requests.Session] = None,
                 max_retries: int = MAX_RETRIES):
        if not api_key:
            raise ConfigMissingError("Google Maps API key not configured")
        self.api_key = api_key
        self.session = session or requests.Session()
        self.max_retries = max_retries
        self.request_count = 0

    def _get(self, url: str, params: Dict[str, Any], retry_count: int = 0) -> Dict[str, Any]:
        """
        GET a Maps endpoint and return its JSON body.

        Raises:
            RateLimitedError: quota exhausted after retries
            UpstreamError: transport failure or REQUEST_DENIED / INVALID_REQUEST
        """
        params = {**params, "key": self.api_key}
        try:
            response = self.session.get(url, params=params, timeout=REQUEST_TIMEOUT)
            self.request_count += 1
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout:
            if retry_count < self.max_retries:
                wait_time = BACKOFF_FACTOR ** retry_count
                logger.warning("Maps request timeout. Retrying in %ss (%s/%s)",
                               wait_time, retry_count + 1, self.max_retries)
                time.sleep(wait_time)
                return self._get(url, params, retry_count + 1)
            raise UpstreamError("Google Maps request timed out")
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"Google Maps request failed: {e}")
        except ValueError as e:
            raise UpstreamError(f"Google Maps returned invalid JSON: {e}")
        if not isinstance(data, dict):
            raise UpstreamError("Google Maps returned an unexpected response body")

        status = data.get("status")
        if status in ("OK", "ZERO_RESULTS") or status is None:
            return data
        if status == "OVER_QUERY_LIMIT":
            if retry_count < self.max_retries:
                wait_time = BACKOFF_FACTOR ** retry_count * 5
                logger.warning("Rate limited. Waiting %ss before retry (%s/%s)",
                               wait_time, retry_count + 1, self.max_retries)
                time.sleep(wait_time)
                return self._get(url, params, retry_count + 1)
            raise RateLimitedError("Google Maps quota exceeded", detail={"status": status})
        message = data.get("error_message") or status
        if status == "REQUEST_DENIED":
            logger.error("Google Maps request denied: %s", message)
            for hint in DENIED_HINTS:
                logger.error("  fix: %s", hint)
            raise UpstreamError(f"Google Maps request denied: {message}",
                                detail={"status": status, "hints": DENIED_HINTS})
        if status == "NOT_FOUND":
            raise NotFoundError(f"Google Maps: {message}", detail={"status": status})
        raise UpstreamError(f"Google Maps error: {message}", detail={"status": status})

    def text_search(self, query: str, lat: Optional[float] = None, lng: Optional[float] = None,
                    radius_m: Optional[int] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"query": query}
        if lat is not None and lng is not None:
            params["location"] = f"{lat},{lng}"
            if radius_m:
                params["radius"] = radius_m
        return self._get(TEXT_SEARCH_URL, params).get("results") or []

    def find_place(self, text: str, fields: str = "place_id,name,formatted_address") -> List[Dict[str, Any]]:
        params = {"input": text, "inputtype": "textquery", "fields": fields}
        return self._get(FIND_PLACE_URL, params).get("candidates") or []

    def place_details(self, place_id: str, fields: List[str]) -> Dict[str, Any]:
        params = {"place_id": place_id, "fields": ",".join(fields)}
        return self._get(PLACE_DETAILS_URL, params).get("result") or {}

    def geocode(self, address: str) -> Optional[Dict[str, Any]]:
        """First geocoding result for an address, or None."""
        results = self._get(GEOCODE_URL, {"address": address}).get("results") or []
        return results[0] if results else None

    def fetch_image_base64(self, url: str) -> str:
        """Download an image (a static map URL without key gets it appended) and base64-encode it."""
        params = {} if "key=" in url else {"key": self.api_key}
        try:
            response = self.session.get(url, params=params, timeout=REQUEST_TIMEOUT)
            self.request_count += 1
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"Failed to fetch satellite image: {e}")
        return base64.b64encode(response.content).decode("ascii")
