import ipaddress
import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class GeoLocator:
    """IP geolocation over HTTP (ipapi.co compatible JSON)."""

    def __init__(self, url_template: str = "https://ipapi.co/{ip}/json/", timeout: float = 1.0,
                 session: Optional[requests.Session] = None):
        self.url_template = url_template
        self.timeout = timeout
        self.session = session or requests.Session()

    def lookup(self, ip: str) -> Optional[Dict[str, Any]]:
        try:
            address = ipaddress.ip_address(ip)
        except ValueError:
            return None
        if address.is_private or address.is_loopback:
            return None
        response = self.session.get(self.url_template.format(ip=ip), timeout=self.timeout)
        if not response.ok:
            logger.debug("Geo lookup for %s returned %s", ip, response.status_code)
            return None
        info = response.json()
        return {
            "ip": ip,
            "city": info.get("city"),
            "region": info.get("region"),
            "country": info.get("country_name") or info.get("country"),
            "latitude": info.get("latitude") or info.get("lat"),
            "longitude": info.get("longitude") or info.get("lon"),
            "org": info.get("org"),
        }
