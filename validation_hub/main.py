from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from validation_hub.config import settings
from validation_hub.core.exceptions import PipelineException
from validation_hub.core.logging import configure_logging

# IMPORT ROUTERS
from validation_hub.routers.health import router as health_router
from validation_hub.routers.tiles import router as tiles_router

configure_logging()


# SWAGGER UI - tag display order
_OPENAPI_TAGS = [
    {"name": "Root"},
    {"name": "health"},
    {"name": "tiles"},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    log = structlog.get_logger("validation_hub")
    log.info("startup", app=settings.APP_NAME, env=settings.APP_ENV, provider_base_url=settings.PROVIDER_BASE_URL)
    yield
    log.info("shutdown", app=settings.APP_NAME)


# FASTAPI APPLICATION CONFIGURATION
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    openapi_tags=_OPENAPI_TAGS,
    lifespan=lifespan,
)

app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


# REGISTER EXCEPTION HANDLERS
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    err = errors[0] if errors else {}
    field = ".".join(str(l) for l in err.get("loc", []) if l != "body")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "VALIDATION_ERROR",
            "message": f"Invalid value for field '{field}'" if field else "Request validation failed",
            "details": {"errors": len(errors)},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


async def pipeline_exception_handler(request: Request, exc: PipelineException):
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": getattr(exc, "error_code", "PIPELINE_ERROR"),
            "message": str(exc),
            "details": None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(PipelineException, pipeline_exception_handler)

# REGISTER ROUTERS
app.include_router(health_router)   # Health
app.include_router(tiles_router)    # Tiles


# ROOT ENDPOINT
@app.get("/", tags=["Root"], summary="Root endpoint")
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": {
            "swagger": "/docs",
            "redoc": "/redoc"
        },
        "status": "running"
    }


# RUN WITH UVICORN
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "validation_hub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
