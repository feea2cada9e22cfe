import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from .reservations import ResourceInfo, ResourceNotFound, Unavailable

logger = logging.getLogger("booking_service")


class HttpPropertyLookup:
    """
    Reads nightly rate and availability from a remote property service
    (``GET {base_url}/properties/{id}``).

    Timeouts and connection failures are reported as Unavailable and are
    not retried.
    """

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=timeout)

    def get_property(self, resource_id: int) -> ResourceInfo:
        url = f"{self.base_url}/properties/{resource_id}"
        try:
            response = self.client.get(url)
        except httpx.TimeoutException as e:
            logger.error(f"Property service timed out for property {resource_id}: {e}")
            raise Unavailable("property service timed out")
        except httpx.TransportError as e:
            logger.error(f"Property service unreachable for property {resource_id}: {e}")
            raise Unavailable("property service unreachable")

        if response.status_code == httpx.codes.NOT_FOUND:
            raise ResourceNotFound(resource_id)
        if response.is_error:
            logger.error(f"Property service returned {response.status_code} for property {resource_id}")
            raise Unavailable(f"property service returned {response.status_code}")

        try:
            data = response.json()
            rate = Decimal(str(data["price_per_night"]))
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            logger.error(f"Malformed property payload for property {resource_id}: {response.text}")
            raise Unavailable(f"malformed property payload: {e}")
        return ResourceInfo(nightly_rate=rate, is_available=bool(data.get("is_available", True)))

    def close(self):
        self.client.close()
