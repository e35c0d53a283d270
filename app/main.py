import base64
import binascii
import json
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import partial
from typing import Any, Awaitable, Callable, List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import UploadFile as StarletteUploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from shelfscan import __version__
from shelfscan.config import Settings
from shelfscan.core.enricher import enrich_titles
from shelfscan.errors import InvalidInput, RelayError
from shelfscan.llm_providers import OpenAIClient, create_llm_client
from shelfscan.models import AnalyzeImageRequest, EnrichedBook, SendMessageRequest
from shelfscan.preprocessing import normalize_image

logger = logging.getLogger(__name__)

CURRENT_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
STATIC_DIR = os.path.join(PROJECT_ROOT, "public")

IMAGE_REQUIRED = "Image data is required. Either upload a file or provide base64 image data."
NO_IMAGE_UPLOADED = "No image file uploaded"

STARTED_AT = time.monotonic()

TitleEnricher = Callable[[List[str]], Awaitable[List[EnrichedBook]]]

# Both request encodings are accepted by the image routes; documented by hand
# because the body is parsed from the raw request.
IMAGE_INPUT_OPENAPI = {
    "requestBody": {
        "required": True,
        "content": {
            "multipart/form-data": {
                "schema": {
                    "type": "object",
                    "properties": {
                        "imageFile": {"type": "string", "format": "binary", "description": "Image file to upload and analyze"},
                    },
                }
            },
            "application/json": {
                "schema": {
                    "type": "object",
                    "required": ["image"],
                    "properties": {
                        "image": {"type": "string", "description": "Base64 encoded image data"},
                    },
                }
            },
        },
    }
}


def decode_base64_image(value: str) -> bytes:
    data = value.strip()
    # Tolerate data URLs, e.g. "data:image/png;base64,...."
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    # Clients often drop the trailing "=" padding
    data = data.rstrip("=")
    data += "=" * (-len(data) % 4)
    try:
        decoded = base64.b64decode(data)
    except (binascii.Error, ValueError) as e:
        raise InvalidInput("Image data is not valid base64") from e
    if not decoded:
        raise InvalidInput(IMAGE_REQUIRED)
    return decoded


async def read_image_input(request: Request) -> bytes:
    """Image bytes from a multipart ``imageFile`` upload or a JSON ``image`` base64 field."""
    content_type = request.headers.get("content-type", "")
    b64: Any = None
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        upload = form.get("imageFile")
        if isinstance(upload, StarletteUploadFile):
            data = await upload.read()
            await upload.close()
            if data:
                return data
        b64 = form.get("image")
    else:
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            b64 = body.get("image")
    if isinstance(b64, str) and b64.strip():
        return decode_base64_image(b64)
    raise InvalidInput(IMAGE_REQUIRED)


async def read_upload(image: Optional[UploadFile]) -> bytes:
    if image is None:
        raise InvalidInput(NO_IMAGE_UPLOADED)
    data = await image.read()
    await image.close()
    if not data:
        raise InvalidInput(NO_IMAGE_UPLOADED)
    return data


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_llm_client(request: Request) -> OpenAIClient:
    return request.app.state.llm_client


def get_title_enricher(request: Request) -> TitleEnricher:
    return request.app.state.title_enricher


router = APIRouter()


@router.post("/send-message", tags=["Chat"], summary="Send a message to the language model")
def send_message(req: SendMessageRequest, llm: OpenAIClient = Depends(get_llm_client)):
    response = llm.send_message(req.message, req.system_prompt or "")
    return {"message": response}


@router.post("/analyze-image", tags=["Chat"], summary="Analyze an image with a free-form prompt")
def analyze_image(req: AnalyzeImageRequest, llm: OpenAIClient = Depends(get_llm_client)):
    if not req.image.strip():
        raise InvalidInput(IMAGE_REQUIRED)
    analysis = llm.analyze_image(decode_base64_image(req.image), req.prompt)
    return {"analysis": analysis}


@router.post(
    "/scan-books",
    tags=["Books"],
    summary="Scan books from image",
    description="Analyze a bookshelf image and identify all books with their details.",
    openapi_extra=IMAGE_INPUT_OPENAPI,
)
async def scan_books(request: Request, llm: OpenAIClient = Depends(get_llm_client)):
    image = await read_image_input(request)
    books = await run_in_threadpool(llm.scan_books, image)
    logger.info("scan-books: %d book(s) extracted", len(books))
    return {"books": [b.to_dict() for b in books]}


@router.post(
    "/extract-book-titles",
    tags=["Books"],
    summary="Extract book titles from an image and get book details",
    description="Extract the titles visible in a bookshelf image, then look each one up on Google Books.",
    openapi_extra=IMAGE_INPUT_OPENAPI,
)
async def extract_book_titles(
    request: Request,
    llm: OpenAIClient = Depends(get_llm_client),
    enricher: TitleEnricher = Depends(get_title_enricher),
):
    image = await read_image_input(request)
    titles = await run_in_threadpool(llm.extract_book_titles, image)
    books = await enricher(titles)
    logger.info(
        "extract-book-titles: %d title(s), %d matched", len(titles), sum(1 for b in books if b.found)
    )
    return {"books": [b.to_dict() for b in books]}


@router.post("/convert-image", tags=["Utility"], summary="Convert an uploaded image to base64")
async def convert_image(image: Optional[UploadFile] = File(None)):
    data = await read_upload(image)
    return {"image": base64.b64encode(data).decode("ascii")}


@router.post("/compress-image", tags=["Utility"], summary="Compress an image and return stats")
async def compress_image(image: Optional[UploadFile] = File(None)):
    data = await read_upload(image)
    original_size = len(base64.b64encode(data))
    compressed = await run_in_threadpool(normalize_image, data)
    compressed_size = len(base64.b64encode(compressed))
    savings = f"{(original_size - compressed_size) / original_size * 100:.2f}"
    return {
        "originalSize": original_size,
        "compressedSize": compressed_size,
        "savingsPercent": f"{savings}%",
        "message": (
            f"Image compressed from {original_size / 1024:.2f}KB to {compressed_size / 1024:.2f}KB "
            f"({savings}% reduction)"
        ),
    }


@router.get("/health", tags=["System"], summary="Health check endpoint")
def health(settings: Settings = Depends(get_settings)):
    now = datetime.now(timezone.utc)
    return {
        "status": "ok",
        "version": __version__,
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "timestamp": now.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "environment": settings.environment,
    }


async def _relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"error": "; ".join(problems) or "Invalid request"})


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=getattr(exc, "headers", None))


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s failed unexpectedly", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Error processing request"})


def create_app(
    settings: Optional[Settings] = None,
    *,
    llm_client: Optional[OpenAIClient] = None,
    title_enricher: Optional[TitleEnricher] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    prefix = settings.api_prefix

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.llm_client.close()

    app = FastAPI(
        title="Bookshelf Vision Relay",
        version=__version__,
        description="Relay for OpenAI chat/vision calls and Google Books lookups",
        docs_url=f"{prefix}/api-docs",
        openapi_url=f"{prefix}/openapi.json",
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.llm_client = llm_client or create_llm_client(settings)
    app.state.title_enricher = title_enricher or partial(enrich_titles, settings=settings)

    app.add_exception_handler(RelayError, _relay_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    @app.middleware("http")
    async def add_time_taken(request: Request, call_next):
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            response = await _unhandled_error_handler(request, exc)
        if request.url.path == app.openapi_url:
            return response
        if not response.headers.get("content-type", "").startswith("application/json"):
            return response
        body = b"".join([chunk async for chunk in response.body_iterator])
        headers = {k: v for k, v in response.headers.items() if k.lower() != "content-length"}
        try:
            payload = json.loads(body)
        except ValueError:
            return Response(content=body, status_code=response.status_code, headers=headers)
        if isinstance(payload, dict):
            payload["timeTaken"] = f"{int((time.perf_counter() - start) * 1000)}ms"
        return JSONResponse(content=payload, status_code=response.status_code, headers=headers)

    app.include_router(router, prefix=prefix)

    if os.path.isdir(STATIC_DIR):
        app.mount(f"{prefix}/static", StaticFiles(directory=STATIC_DIR), name="static")

    logger.info("API docs available at %s/api-docs", prefix)
    return app


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def __getattr__(name: str):
    # Built on first access (``uvicorn app.main:app``) so importing this
    # module does not read the environment or .env
    if name == "app":
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        globals()["app"] = create_app(settings)
        return globals()["app"]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
