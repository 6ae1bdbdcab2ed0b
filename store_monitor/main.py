from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from typing import Optional
import asyncio
import logging
import traceback
import uvicorn

from store_monitor import config
from store_monitor.api.endpoints import health_status, router
from store_monitor.errors import ReportError
from store_monitor.models.schemas import HealthResponse
from store_monitor.services.dataset_loader import CsvDatasetSource, DatasetPaths, fetch_datasets
from store_monitor.services.report_service import JobManager

logger = logging.getLogger(__name__)


def build_job_manager() -> JobManager:
    source = CsvDatasetSource(DatasetPaths.from_config(), chunk_size=config.CSV_CHUNK_SIZE)
    return JobManager(source, max_workers=config.REPORT_MAX_WORKERS, verbose_errors=config.DEVELOPMENT)


def create_app(job_manager: Optional[JobManager] = None, development: bool = config.DEVELOPMENT) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        manager = job_manager
        if manager is None:
            if config.DOWNLOAD_DATASETS:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, fetch_datasets, DatasetPaths.from_config())
            manager = build_job_manager()

        manager.initialize()
        app.state.job_manager = manager
        yield
        manager.shutdown(wait=False)

    app = FastAPI(
        title="Store Monitoring API",
        description="Asynchronous store uptime reports restricted to business hours",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.development = development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router, prefix="/api")

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return health_status()

    register_exception_handlers(app)
    return app


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ReportError)
    async def report_error_handler(request: Request, exc: ReportError):
        return JSONResponse(status_code=exc.status_code, content={"error": True, "message": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = "Resource not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": True, "message": message},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": True, "message": "Validation error", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        content = {"error": True, "message": str(exc) or "An unexpected error occurred"}
        if request.app.state.development:
            content["details"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(status_code=500, content=content)


logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host=config.HOST, port=config.PORT)
