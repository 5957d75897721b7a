import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from darktrack.core.errors import (
    PersistenceError,
    RateLimited,
    ScanError,
    ScanNotFound,
    ValidationError,
)
from darktrack.dependencies.services import get_scan_service
from darktrack.models.user import User
from darktrack.routes.auth import get_current_user
from darktrack.schemas.scan import QuickLookupResult, SaveLookupRequest, ScanRequest, ScanView
from darktrack.services.scan_service import ScanService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scan", tags=["Scan"])


def to_http_exception(exc: ScanError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=exc.to_detail())

    if isinstance(exc, RateLimited):
        return HTTPException(
            status_code=429,
            detail=exc.to_detail(),
            headers={"Retry-After": str(exc.retry_after_seconds(datetime.now(timezone.utc)))},
        )

    if isinstance(exc, ScanNotFound):
        return HTTPException(status_code=404, detail=exc.to_detail())

    if isinstance(exc, PersistenceError):
        return HTTPException(
            status_code=500,
            detail={
                "error": {
                    "code": exc.code,
                    "message": "Failed to run scan",
                }
            },
        )

    return HTTPException(status_code=500, detail="Scan failed")


@router.post("", response_model=ScanView)
def scan_email(
    payload: ScanRequest,
    current_user: User = Depends(get_current_user),
    service: ScanService = Depends(get_scan_service),
):
    try:
        return service.scan_email(str(current_user.id), payload.email)
    except ScanError as exc:
        raise to_http_exception(exc)


@router.post("/self", response_model=ScanView)
def scan_self(
    current_user: User = Depends(get_current_user),
    service: ScanService = Depends(get_scan_service),
):
    try:
        return service.scan_self(str(current_user.id), current_user.email)
    except ScanError as exc:
        raise to_http_exception(exc)


@router.post("/lookup", response_model=QuickLookupResult)
def quick_lookup(
    payload: ScanRequest,
    current_user: User = Depends(get_current_user),
    service: ScanService = Depends(get_scan_service),
):
    try:
        return service.quick_lookup(str(current_user.id), payload.email)
    except ScanError as exc:
        raise to_http_exception(exc)


@router.post("/lookup/save", response_model=ScanView)
def save_lookup(
    payload: SaveLookupRequest,
    current_user: User = Depends(get_current_user),
    service: ScanService = Depends(get_scan_service),
):
    try:
        return service.save_lookup(str(current_user.id), payload)
    except ScanError as exc:
        raise to_http_exception(exc)
