# Overview: Coarse IP geolocation used to gate location-restricted vouchers.

"""
Geolocation Resolver

Maps a requester's network address to a coarse location label (a city by
default). The lookup is best-effort: any upstream failure degrades to
UNKNOWN_LOCATION instead of failing the redemption request, and the HTTP
call is bounded by a timeout so redemption never blocks on it.
"""

from __future__ import annotations

import httpx
from flask import current_app


UNKNOWN_LOCATION = "Unknown"

DEFAULT_URL_TEMPLATE = "https://ipinfo.io/{address}/json"
DEFAULT_TIMEOUT_SECONDS = 3.0
DEFAULT_FIELD = "city"


class GeolocationError(Exception):
    """Raised when the upstream geolocation service cannot answer."""
    pass


class GeolocationResolver:
    def __init__(
        self,
        url_template: str = DEFAULT_URL_TEMPLATE,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        field: str = DEFAULT_FIELD,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url_template = url_template
        self.timeout = timeout
        self.field = field
        self._transport = transport

    @classmethod
    def from_config(cls, config) -> "GeolocationResolver":
        return cls(
            url_template=config.get("GEOLOCATION_URL_TEMPLATE", DEFAULT_URL_TEMPLATE),
            timeout=config.get("GEOLOCATION_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
            field=config.get("GEOLOCATION_FIELD", DEFAULT_FIELD),
        )

    def lookup(self, address: str) -> str:
        """
        Query the upstream service.

        Raises:
            GeolocationError: on transport errors, non-2xx responses,
            undecodable bodies or a missing/blank location field
        """
        url = self.url_template.format(address=address)
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.get(url)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise GeolocationError(f"Geolocation lookup failed for {address}: {exc}") from exc

        label = data.get(self.field) if isinstance(data, dict) else None
        if not isinstance(label, str) or not label.strip():
            raise GeolocationError(f"Geolocation response for {address} has no {self.field!r}")
        return label

    def resolve(self, address: str | None) -> str:
        """Resolve a coarse location label, falling back to UNKNOWN_LOCATION."""
        if not address:
            return UNKNOWN_LOCATION
        try:
            return self.lookup(address)
        except GeolocationError as exc:
            current_app.logger.warning("Geolocation unavailable, using %s: %s", UNKNOWN_LOCATION, exc)
            return UNKNOWN_LOCATION


class StaticGeolocationResolver:
    """Resolver returning a fixed label; for local development and tests."""

    def __init__(self, label: str = UNKNOWN_LOCATION):
        self.label = label
        self.calls: list[str | None] = []

    def resolve(self, address: str | None) -> str:
        self.calls.append(address)
        return self.label


def get_resolver():
    """Resolver registered on the current app by create_app()."""
    return current_app.extensions["geolocation"]
