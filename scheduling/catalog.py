"""
Venue Catalog

Read-only lookup of venues with their services, employees and opening hours.
The catalog is owned by another service; this module only consumes it.
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional, Protocol

import requests

from scheduling.models.domain import Employee, Service, Venue, parse_opening_hours
from scheduling.models.results import UpstreamUnavailable

logger = logging.getLogger(__name__)


class CatalogError(UpstreamUnavailable):
    """Custom exception for catalog lookup failures."""
    pass


class Catalog(Protocol):
    async def get_venue(self, venue_id: str) -> Optional[Venue]:
        """Return the venue or None if the catalog does not know it."""
        ...


class InMemoryCatalog:
    """Catalog backed by a fixed set of venues (fixtures, tests, local runs)."""

    def __init__(self, venues: Iterable[Venue] = ()):
        self._venues: Dict[str, Venue] = {venue.id: venue for venue in venues}

    def add(self, venue: Venue) -> None:
        self._venues[venue.id] = venue

    async def get_venue(self, venue_id: str) -> Optional[Venue]:
        return self._venues.get(venue_id)


class HttpCatalog:
    """
    Catalog client for the venue catalog HTTP API.

    Calls ``GET {base_url}/venues/{venue_id}``. The blocking ``requests``
    call runs in a worker thread so the event loop is never held.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize HttpCatalog.

        Args:
            base_url: Catalog API base URL (without trailing slash)
            token: Optional bearer token
            timeout: Request timeout in seconds
            session: Optional requests session (shared connection pool)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    async def get_venue(self, venue_id: str) -> Optional[Venue]:
        payload = await asyncio.to_thread(self._fetch_venue, venue_id)
        if payload is None:
            return None
        try:
            return venue_from_payload(payload)
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            logger.error(f"Malformed catalog payload for venue {venue_id}: {e}")
            raise CatalogError(f"Malformed catalog payload for venue {venue_id}") from e

    def _fetch_venue(self, venue_id: str) -> Optional[Dict[str, Any]]:
        url = f"{self.base_url}/venues/{venue_id}"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Failed to connect to catalog at {self.base_url}: {e}")
            raise CatalogError(f"Cannot connect to catalog at {self.base_url}") from e
        except requests.exceptions.Timeout as e:
            logger.error(f"Catalog request timed out for venue {venue_id}: {e}")
            raise CatalogError("Catalog request timed out") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Catalog request failed for venue {venue_id}: {e}")
            raise CatalogError(f"Catalog request failed: {e}") from e

        if response.status_code == 404:
            logger.debug(f"Catalog has no venue {venue_id}")
            return None
        if response.status_code != 200:
            raise CatalogError(
                f"Catalog API returned status {response.status_code} for venue {venue_id}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise CatalogError(f"Catalog returned invalid JSON for venue {venue_id}") from e

        # Some deployments wrap payloads as {"success": true, "data": {...}}
        if isinstance(body, dict) and "data" in body and "id" not in body:
            body = body["data"]
        if not isinstance(body, dict):
            raise CatalogError(f"Unexpected catalog payload for venue {venue_id}")
        return body


def venue_from_payload(payload: Dict[str, Any]) -> Venue:
    """
    Build a Venue from a catalog payload.

    Example payload:
        {
            "id": "v1",
            "name": "Emre's Barbershop",
            "timezone": "Europe/Istanbul",
            "openingHours": [{"day": "Monday", "isOpen": true,
                              "openTime": "09:00", "closeTime": "18:00"}],
            "services": [{"id": "s1", "name": "Haircut", "duration": 60, "price": "700.00"}],
            "employees": [{"id": "e1", "name": "Emre", "serviceIds": ["s1"]}]
        }
    """
    services = {}
    for item in payload.get("services", []):
        service = Service(
            id=str(item["id"]),
            name=str(item["name"]),
            duration_minutes=int(item["duration"]),
            price=Decimal(str(item.get("price", "0"))),
        )
        services[service.id] = service

    employees = tuple(
        Employee(
            id=str(item["id"]),
            name=str(item["name"]),
            service_ids=frozenset(str(s) for s in item.get("serviceIds", [])),
        )
        for item in payload.get("employees", [])
    )

    venue = Venue(
        id=str(payload["id"]),
        name=str(payload["name"]),
        timezone=str(payload.get("timezone", "UTC")),
        opening_hours=parse_opening_hours(payload.get("openingHours", [])),
        services=services,
        employees=employees,
    )
    venue.tz  # unknown zone names raise ZoneInfoNotFoundError (a KeyError)
    return venue
