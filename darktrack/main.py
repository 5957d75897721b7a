import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

from darktrack.core.config import get_cors_origins, get_environment  # noqa: E402
from darktrack.core.crypto import CryptoService  # noqa: E402
from darktrack.db import init_db  # noqa: E402
from darktrack.middleware.request_logging import RequestLoggingMiddleware  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("DarkTrack API starting up environment=%s", get_environment())

    # CryptoError here is fatal: the app must not serve without a usable key.
    app.state.crypto = CryptoService.from_env()
    init_db()

    logger.info("Startup completed")
    yield


app = FastAPI(
    title="DarkTrack API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


from darktrack.routes.scan import router as scan_router  # noqa: E402
from darktrack.routes.scans import router as scans_router  # noqa: E402

app.include_router(scan_router)
app.include_router(scans_router)


@app.get("/health")
def health_check():
    return {
        "status": "ok",
        "service": "darktrack-backend",
        "version": "1.0.0",
    }
