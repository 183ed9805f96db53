"""
Shape lookup results into client payloads (JSON or JSONP)
"""

import re
from typing import Dict, List, Optional, Union

from fastapi import Response
from pydantic import BaseModel

from .store import LocationRecord, Subdivision

JSON_MEDIA_TYPE = "application/json; charset=utf-8"
JAVASCRIPT_MEDIA_TYPE = "application/javascript; charset=utf-8"

_CALLBACK_RE = re.compile(r"^[A-Za-z_$][\w$]*(\.[A-Za-z_$][\w$]*)*$")


class InvalidCallbackError(ValueError):
    """JSONP callback is not a JavaScript identifier path"""


class UnresolvedResponse(BaseModel):
    ip_address: str


class ResolvedResponse(BaseModel):
    ip_address: str
    latitude: float = 0.0
    longitude: float = 0.0
    postal_code: str = ""
    continent_code: str = ""
    country_code: str = ""
    country_name: str = ""
    region_code: str = ""
    region_name: str = ""
    province_code: str = ""
    province_name: str = ""
    city_name: str = ""
    timezone: str = ""


GeoResponse = Union[ResolvedResponse, UnresolvedResponse]


def localized(names: Optional[Dict[str, str]], language: str) -> str:
    """Name in the requested language, or "" when missing. No fallback language."""
    if not names:
        return ""
    return names.get(language) or ""


def _subdivision(subdivisions: List[Subdivision], index: int) -> Optional[Subdivision]:
    return subdivisions[index] if len(subdivisions) > index else None


def build_response(ip_address: str, record: Optional[LocationRecord], language: str) -> GeoResponse:
    """ResolvedResponse for a found record, UnresolvedResponse otherwise"""
    if record is None:
        return UnresolvedResponse(ip_address=ip_address)

    location = record.location
    region = _subdivision(record.subdivisions, 0)
    province = _subdivision(record.subdivisions, 1)

    return ResolvedResponse(
        ip_address=ip_address,
        latitude=location.latitude if location and location.latitude is not None else 0.0,
        longitude=location.longitude if location and location.longitude is not None else 0.0,
        postal_code=(record.postal.code if record.postal else None) or "",
        continent_code=(record.continent.code if record.continent else None) or "",
        country_code=(record.country.iso_code if record.country else None) or "",
        country_name=localized(record.country.names if record.country else None, language),
        region_code=(region.iso_code if region else None) or "",
        region_name=localized(region.names if region else None, language),
        province_code=(province.iso_code if province else None) or "",
        province_name=localized(province.names if province else None, language),
        city_name=localized(record.city.names if record.city else None, language),
        timezone=(location.time_zone if location else None) or "",
    )


def validate_callback(callback: str) -> str:
    if not _CALLBACK_RE.match(callback):
        raise InvalidCallbackError(f"invalid callback name: {callback!r}")
    return callback


def render(payload: GeoResponse, callback: Optional[str] = None) -> Response:
    """Serialize payload; wrap as ``;callback(json);`` when a callback is given"""
    body = payload.model_dump_json()
    if callback:
        validate_callback(callback)
        return Response(content=f";{callback}({body});", media_type=JAVASCRIPT_MEDIA_TYPE)
    return Response(content=body, media_type=JSON_MEDIA_TYPE)
