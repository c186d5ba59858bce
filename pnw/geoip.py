"""Geo-IP lookups against a local MaxMind GeoLite2-City database."""

import logging
from collections.abc import Iterable

import geoip2.database
import geoip2.errors

from pnw.config import PnwConfig
from pnw.models import Location

logger = logging.getLogger(__name__)


class GeoIPReader:
    """Wrapper around a MaxMind GeoLite2-City database reader.

    The reader is tolerant of a missing database file: if the path is
    ``None`` or points to a non-existent file, lookups simply return
    ``None``.  Results (including misses) are memoised per IP for the
    lifetime of the reader.

    Args:
        city_db_path: Path to ``GeoLite2-City.mmdb``, or ``None``.
    """

    def __init__(self, city_db_path: str | None = None) -> None:
        self._city_reader: geoip2.database.Reader | None = None
        self._cache: dict[str, Location | None] = {}

        if city_db_path:
            try:
                self._city_reader = geoip2.database.Reader(city_db_path)
                logger.debug("Opened GeoLite2-City DB: %s", city_db_path)
            except FileNotFoundError:
                logger.warning(
                    "GeoLite2-City DB not found at %s; location enrichment disabled",
                    city_db_path,
                )

    @property
    def enabled(self) -> bool:
        return self._city_reader is not None

    def close(self) -> None:
        """Close the underlying database reader."""
        if self._city_reader:
            self._city_reader.close()

    def lookup(self, ip: str) -> Location | None:
        """Look up country, city, continent and coordinates for an IP.

        Args:
            ip: IPv4 or IPv6 address string.

        Returns:
            A ``Location``, or ``None`` if the lookup fails.
        """
        if not self._city_reader:
            return None
        if ip in self._cache:
            return self._cache[ip]

        try:
            resp = self._city_reader.city(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            logger.debug("City lookup failed for %s", ip)
            location = None
        else:
            location = Location(
                country=resp.country.name,
                country_code=resp.country.iso_code,
                city=resp.city.name,
                region=resp.continent.name,
                latitude=resp.location.latitude,
                longitude=resp.location.longitude,
            )

        self._cache[ip] = location
        return location


def locate(ips: Iterable[str], config: PnwConfig) -> dict[str, Location]:
    """Geolocate a set of IP addresses.

    Args:
        ips: IP addresses; duplicates are looked up once.
        config: Application configuration containing the MaxMind DB path.

    Returns:
        ``ip -> Location`` for every address that could be located.
    """
    reader = GeoIPReader(city_db_path=config.maxmind_city_db)
    if not reader.enabled:
        return {}

    out: dict[str, Location] = {}
    try:
        for ip in ips:
            if ip in out:
                continue
            location = reader.lookup(ip)
            if location is not None:
                out[ip] = location
    finally:
        reader.close()

    logger.debug("Located %d address(es)", len(out))
    return out
