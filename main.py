import mimetypes
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, StreamingResponse

from config import BucketConfig, ConfigError
from fsbucket.errors import AuthorizationError, FsBucketError
from fsbucket.services.authorizer import Authorized, authorize
from fsbucket.services.storage_handler import StorageHandler
from fsbucket.services.transfer_monitor import TransferMonitor
from logger_config import setup_logger

# Logger setup
logger = setup_logger()

router = APIRouter()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await app.state.storage_handler.initialize()
    yield


def create_app(bucket_config: BucketConfig) -> FastAPI:
    """Build the gateway app for one storage root and secret."""
    app = FastAPI(title="fsbucket", lifespan=lifespan)
    app.state.bucket_config = bucket_config
    app.state.transfer_monitor = TransferMonitor()
    app.state.storage_handler = StorageHandler(bucket_config, app.state.transfer_monitor)

    # Enable CORS for all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "PUT"],
        allow_headers=["*"],
        expose_headers=["Content-Length", "Content-Range", "Accept-Ranges"],
    )
    app.add_exception_handler(FsBucketError, fsbucket_error_handler)
    app.include_router(router)
    return app


def app_from_env() -> FastAPI:
    """App factory for `uvicorn main:app_from_env --factory`."""
    return create_app(BucketConfig.from_env())


async def fsbucket_error_handler(request: Request, exc: FsBucketError):
    return PlainTextResponse(exc.message, status_code=exc.status_code, headers=exc.headers)


def authorize_request(request: Request, method: str) -> str:
    """Check the signed query of a request and return the authorized path."""
    # scope["path"] is the URL path percent-decoded exactly once
    request_path = request.scope["path"]
    outcome = authorize(
        method,
        request_path,
        request.query_params,
        request.app.state.bucket_config.secret_key,
    )
    if not isinstance(outcome, Authorized):
        raise AuthorizationError(outcome.message, reason=outcome.reason)
    return outcome.path


@router.get("/{file_path:path}")
async def get_file(request: Request):
    """Stream a stored file, or the byte range asked for in the Range header."""
    path = authorize_request(request, "GET")
    storage_handler = request.app.state.storage_handler

    range_header = request.headers.get("range")
    logger.info(f"Receiving download request for {path}" + (f" ({range_header})" if range_header else ""))

    download = await storage_handler.prepare_download(path, range_header)

    content_type, _ = mimetypes.guess_type(download.file_path.name)
    return StreamingResponse(
        storage_handler.iter_file(download),
        status_code=download.status_code,
        headers=download.headers,
        media_type=content_type or "application/octet-stream",
    )


@router.put("/{file_path:path}")
async def put_file(request: Request):
    """Store the request body at a path that does not exist yet."""
    path = authorize_request(request, "PUT")
    storage_handler = request.app.state.storage_handler

    await storage_handler.store_upload(path, request.stream())
    return PlainTextResponse("File uploaded successfully")


if __name__ == "__main__":
    try:
        bucket_config = BucketConfig.from_env()
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info("Starting fsbucket...")
    logger.info(f"Storage directory: {bucket_config.base_dir}")
    logger.info(f"Staging directory: {bucket_config.staging_dir}")
    uvicorn.run(create_app(bucket_config), host=bucket_config.host, port=bucket_config.port)
