"""
Gate Geolocation Resolver

Country and ASN resolution from local MaxMind GeoLite2 databases.

Fail open: a missing database, a private address or a lookup miss all
return the stub GeoData (country "XX", ASN 0).
"""

import ipaddress
import logging
import os
from typing import Optional

import geoip2.database
from geoip2.errors import AddressNotFoundError
from maxminddb.errors import InvalidDatabaseError

from core.schemas.inputs import GeoData


logger = logging.getLogger(__name__)


def _open_reader(path: Optional[str]) -> Optional[geoip2.database.Reader]:
    if not path or not os.path.exists(path):
        return None
    try:
        return geoip2.database.Reader(path)
    except (OSError, InvalidDatabaseError) as e:
        logger.warning(f"GeoIP database unavailable at {path}: {e}")
        return None


class MaxMindGeoResolver:
    """Geolocation collaborator using GeoLite2-City and GeoLite2-ASN."""

    DEFAULT_CITY_DB = "/usr/share/geoip/GeoLite2-City.mmdb"
    DEFAULT_ASN_DB = "/usr/share/geoip/GeoLite2-ASN.mmdb"

    def __init__(
        self,
        city_db_path: Optional[str] = DEFAULT_CITY_DB,
        asn_db_path: Optional[str] = DEFAULT_ASN_DB,
    ) -> None:
        self.city_reader = _open_reader(city_db_path)
        self.asn_reader = _open_reader(asn_db_path)

        if self.city_reader is None:
            logger.warning("GeoIP city database unavailable, using stub geo data")

    def get_geo(self, ip: str) -> GeoData:
        if self.city_reader is None or self._is_private_ip(ip):
            return GeoData()

        try:
            record = self.city_reader.city(ip)
        except (AddressNotFoundError, ValueError) as e:
            logger.debug(f"GeoIP lookup failed for {ip}: {e}")
            return GeoData()

        asn, organization = self._lookup_asn(ip)
        return GeoData(
            country_code=record.country.iso_code or "XX",
            country_name=record.country.name or "Unknown",
            region=record.subdivisions.most_specific.name or "",
            city=record.city.name or "",
            latitude=record.location.latitude or 0.0,
            longitude=record.location.longitude or 0.0,
            timezone=record.location.time_zone or "UTC",
            asn=asn,
            organization=organization,
        )

    def _lookup_asn(self, ip: str):
        if self.asn_reader is None:
            return 0, "Unknown"
        try:
            record = self.asn_reader.asn(ip)
        except (AddressNotFoundError, ValueError):
            return 0, "Unknown"
        return (
            record.autonomous_system_number or 0,
            record.autonomous_system_organization or "Unknown",
        )

    @staticmethod
    def _is_private_ip(ip: str) -> bool:
        try:
            address = ipaddress.ip_address(ip)
        except ValueError:
            return True
        return address.is_private or address.is_loopback or address.is_reserved

    def close(self) -> None:
        for reader in (self.city_reader, self.asn_reader):
            if reader is not None:
                reader.close()
