"""
GET / - geolocate the requested or calling IP address
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, Response

from .. import config
from ..resolver import UnresolvableAddressError, is_ip_literal, resolve_ip
from ..responses import InvalidCallbackError, build_response, render, validate_callback
from ..services.prometheus_metrics import prometheus_metrics

router = APIRouter(tags=["lookup"])

logger = logging.getLogger("geoip")


def _reject(reason: str, detail: str):
    prometheus_metrics.increment_request_errors(reason)
    raise HTTPException(status_code=400, detail=detail)


@router.get("/")
def lookup(
    request: Request,
    ip: Optional[str] = Query(None),
    lang: Optional[str] = Query(None),
    callback: Optional[str] = Query(None),
) -> Response:
    language = lang or config.DEFAULT_LANG
    remote_addr = request.client.host if request.client else None

    if callback:
        try:
            validate_callback(callback)
        except InvalidCallbackError as e:
            _reject("invalid_callback", str(e))

    try:
        ip_address = resolve_ip(ip, request.headers, remote_addr)
    except UnresolvableAddressError as e:
        _reject("unresolvable", str(e))

    if not is_ip_literal(ip_address):
        _reject("invalid_address", f"not an IP address: {ip_address!r}")

    # captured once; a concurrent refresh does not affect this request
    store = request.app.state.store_holder.current()
    record = store.lookup(ip_address)
    prometheus_metrics.increment_lookups(record is not None)

    return render(build_response(ip_address, record, language), callback)
