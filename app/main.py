"""
Drive bucket gateway: S3-style buckets and objects stored in the caller's Google Drive.

Configure logging, register error handlers that render {"error": ...},
optional DB init, then mount routers (fixed prefixes before the bucket
catch-all routes).
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import LOG_LEVEL, SKIP_DB_INIT
from database import Base, engine
from errors import GatewayError
from auth import router as auth_router
from sharing import router as sharing_router
from storage import router as storage_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create DB tables if not skipping (production manages schema separately)
if not SKIP_DB_INIT:
    Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Drive Bucket Gateway",
    description="Buckets and objects over Google Drive, with presigned public links.",
)


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions; log and return generic 500. Never leak stack traces."""
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
    )


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(auth_router)
app.include_router(sharing_router)
app.include_router(storage_router)
