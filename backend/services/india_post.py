"""
India Post PIN lookup

Resolves a 6-digit PIN to its post offices via the public postalpincode.in API.
Definitive answers (found / not found) are cached for the process lifetime;
transport errors are not cached so the next request retries.
"""
import logging
from typing import Dict, Any, Optional

import httpx

logger = logging.getLogger(__name__)

INDIA_POST_API = "https://api.postalpincode.in/pincode/"
HTTP_TIMEOUT = httpx.Timeout(10.0, connect=5.0)

PIN_ERROR = {"PinStatus": "Error"}

# Format: {pin: {"PinStatus": "Success", "PostOfficeList": [...]} | PIN_ERROR}
_pincode_cache: Dict[str, Dict[str, Any]] = {}


def clear_cache():
    _pincode_cache.clear()


def _parse_response(payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, list) or not payload:
        return PIN_ERROR
    post_data = payload[0] or {}
    if post_data.get("Status") != "Success" or not post_data.get("PostOffice"):
        return PIN_ERROR

    post_offices = [
        {
            "Name": po.get("Name") or "",
            "Taluk": po.get("Taluk") or po.get("SubDistrict") or "",
            "District": po.get("District") or "",
            "State": po.get("State") or "",
        }
        for po in post_data["PostOffice"]
    ]
    return {"PinStatus": "Success", "PostOfficeList": post_offices}


async def get_india_post_data(pin: Optional[str]) -> Dict[str, Any]:
    """
    Look up a PIN.

    Returns {"PinStatus": "Success", "PostOfficeList": [{Name, Taluk, District, State}, ...]}
    or {"PinStatus": "Error"}. Never raises.
    """
    if not pin:
        return PIN_ERROR
    if pin in _pincode_cache:
        return _pincode_cache[pin]

    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            r = await client.get(f"{INDIA_POST_API}{pin}")
        if r.status_code != 200:
            logger.warning(f"India Post API returned {r.status_code} for PIN {pin}")
            return PIN_ERROR
        result = _parse_response(r.json())
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"India Post API error for PIN {pin}: {e}")
        return PIN_ERROR

    _pincode_cache[pin] = result
    return result
