from fastapi import Depends, Request
from sqlalchemy.orm import Session

from darktrack.core.crypto import CryptoService
from darktrack.db import get_db
from darktrack.services.ai_narrative import NarrativeClient
from darktrack.services.breach.manager import get_breach_provider
from darktrack.services.scan_repository import ScanRepository, SqlScanRepository
from darktrack.services.scan_service import ScanService


def get_crypto(request: Request) -> CryptoService:
    # Built once at startup; a bad key has already stopped the app.
    return request.app.state.crypto


def get_scan_repository(
    db: Session = Depends(get_db),
    crypto: CryptoService = Depends(get_crypto),
) -> ScanRepository:
    return SqlScanRepository(db, crypto)


def get_scan_service(
    repository: ScanRepository = Depends(get_scan_repository),
) -> ScanService:
    return ScanService(
        repository=repository,
        breach_provider=get_breach_provider(),
        narrative_client=NarrativeClient.from_env(),
    )
