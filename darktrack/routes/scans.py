from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from darktrack.core.errors import ScanError
from darktrack.dependencies.services import get_scan_repository, get_scan_service
from darktrack.models.user import User
from darktrack.routes.auth import get_current_user
from darktrack.routes.scan import to_http_exception
from darktrack.schemas.scan import BreachView, ScanView, ScanWithBreaches, VulnerabilityView
from darktrack.services.scan_repository import ScanRepository
from darktrack.services.scan_service import ScanService

router = APIRouter(tags=["History"])


def _get_owned_scan(scan_id: str, user: User, repository: ScanRepository) -> ScanView:
    scan = repository.get_scan_by_id(scan_id)
    if not scan or scan.user_id != str(user.id):
        raise HTTPException(status_code=404, detail="Scan not found")
    return scan


# =====================================================
# SCANS
# =====================================================
@router.get("/scans", response_model=List[ScanView])
def list_scans(
    current_user: User = Depends(get_current_user),
    repository: ScanRepository = Depends(get_scan_repository),
):
    return repository.get_scans_by_user_id(str(current_user.id))


@router.get("/scans/latest", response_model=ScanView)
def latest_scan(
    current_user: User = Depends(get_current_user),
    repository: ScanRepository = Depends(get_scan_repository),
):
    scan = repository.get_latest_scan_by_user_id(str(current_user.id))
    if not scan:
        raise HTTPException(status_code=404, detail="No scans found")
    return scan


@router.get("/scans/recent", response_model=List[ScanWithBreaches])
def recent_scans(
    limit: int = Query(3, ge=1, le=20),
    current_user: User = Depends(get_current_user),
    repository: ScanRepository = Depends(get_scan_repository),
):
    return repository.get_recent_scans_with_breaches(str(current_user.id), limit)


@router.get("/scans/{scan_id}", response_model=ScanView)
def get_scan(
    scan_id: str,
    current_user: User = Depends(get_current_user),
    repository: ScanRepository = Depends(get_scan_repository),
):
    return _get_owned_scan(scan_id, current_user, repository)


@router.get("/scans/{scan_id}/breaches", response_model=List[BreachView])
def get_scan_breaches(
    scan_id: str,
    current_user: User = Depends(get_current_user),
    repository: ScanRepository = Depends(get_scan_repository),
):
    _get_owned_scan(scan_id, current_user, repository)
    return repository.get_breaches_by_scan_id(scan_id)


@router.get("/scans/{scan_id}/vulnerabilities", response_model=List[VulnerabilityView])
def get_scan_vulnerabilities(
    scan_id: str,
    current_user: User = Depends(get_current_user),
    repository: ScanRepository = Depends(get_scan_repository),
):
    _get_owned_scan(scan_id, current_user, repository)
    return repository.get_vulnerabilities_by_scan_id(scan_id)


@router.post("/scans/{scan_id}/analysis", response_model=ScanView)
def regenerate_analysis(
    scan_id: str,
    current_user: User = Depends(get_current_user),
    service: ScanService = Depends(get_scan_service),
):
    try:
        return service.regenerate_analysis(str(current_user.id), scan_id)
    except ScanError as exc:
        raise to_http_exception(exc)


# =====================================================
# LATEST BREACHES
# =====================================================
@router.get("/breaches", response_model=List[BreachView])
def latest_breaches(
    current_user: User = Depends(get_current_user),
    repository: ScanRepository = Depends(get_scan_repository),
):
    scan = repository.get_latest_scan_by_user_id(str(current_user.id))
    if not scan:
        return []
    return repository.get_breaches_by_scan_id(scan.id)
