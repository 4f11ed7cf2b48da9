from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from design_intel.config import get_settings
from design_intel.errors import InvalidInputError, NotFoundError
from design_intel.models.base import init_db
from design_intel.api import catalog, learning, tasks, trends
from design_intel.services.llm.types import (
    LLMProviderError,
    NoEligibleProviderError,
    ProviderTimeoutError,
)

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: initialize database tables
    init_db()
    yield


app = FastAPI(
    title="Design Intelligence API",
    description="Component catalog, trend analysis, provider routing and continuous learning",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(catalog.router, prefix="/components", tags=["components"])
app.include_router(trends.router, prefix="/trends", tags=["trends"])
app.include_router(learning.router, prefix="/learning", tags=["learning"])
app.include_router(tasks.router, prefix="/tasks", tags=["tasks"])


# Domain errors -> HTTP status
@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(NoEligibleProviderError)
async def no_provider_handler(request: Request, exc: NoEligibleProviderError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ProviderTimeoutError)
async def provider_timeout_handler(request: Request, exc: ProviderTimeoutError):
    return JSONResponse(status_code=504, content={"detail": str(exc)})


@app.exception_handler(LLMProviderError)
async def provider_error_handler(request: Request, exc: LLMProviderError):
    return JSONResponse(status_code=502, content={"detail": str(exc), "retryable": exc.retryable})


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


@app.get("/")
async def root():
    return {"message": "Design Intelligence API", "docs": "/docs"}
