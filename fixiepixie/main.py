import logging
import time
from contextlib import asynccontextmanager

# --- FASTAPI IMPORTS ---
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import uvicorn

# --- LOCAL MODULES ---
from fixiepixie.core.settings import Settings, get_settings
from fixiepixie.routes.reports import router as reports_router
from fixiepixie.services.authority_service import ContactDirectory
from fixiepixie.services.delivery_router import DeliveryRouter

# --- LOGGING SETUP ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)


# --- TIMING MIDDLEWARE ---
class TimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        return response


# --- LIFESPAN CONTEXT MANAGER ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: a missing or broken contact directory must stop the process here
    settings = get_settings()
    logger.info(f"🚀 Starting {settings.app_name} API ({settings.env})...")
    directory = ContactDirectory.from_file(settings.contacts_path)
    app.state.delivery_router = DeliveryRouter(settings, directory)

    missing = settings.smtp.missing()
    if missing:
        logger.warning(f"⚠️ SMTP not configured (missing {', '.join(missing)}); server-mediated delivery will fail")

    logger.info("✅ Report pipeline ready")
    yield
    logger.info("🔄 Shutting down...")


# --- APP INITIALIZATION ---
app = FastAPI(title="FixiePixie API", lifespan=lifespan)

# --- MIDDLEWARE ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TimingMiddleware)


# --- REQUEST LOGGING ---
@app.middleware("http")
async def log_requests(request: Request, call_next):
    path = request.url.path
    logger.info(f"📥 {request.method} {path}")
    try:
        return await call_next(request)
    except Exception as e:
        logger.error(f"💥 Error causing 500: {path} - {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# --- ROUTER MOUNTING ---
app.include_router(reports_router, tags=["Reports"])


# --- HEALTH ---
@app.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    return {"ok": True, "name": settings.app_name, "env": settings.env}


# --- MAIN ---
if __name__ == "__main__":
    port = 3000
    logger.info(f"Server starting on port {port}")
    uvicorn.run("fixiepixie.main:app", host="0.0.0.0", port=port, reload=False, log_level="info")
