import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, File, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, configure_logging
from .errors import AllModelsExhausted, ImageValidationError
from .models import IdentifyResponse, PlantRecord
from .services.gemini import GeminiClient
from .services.identify import identify_plant
from .services.images import ImageSearchService
from .services.ingress import ALLOWED_MIME_TYPES, validate_upload
from .services.schema import processing_error_record, service_unavailable_record

API_VERSION = "4.0.0"
SERVICE_NAME = "Plant Identifier API"

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _elapsed_ms(start: float) -> str:
    return f"{int((time.monotonic() - start) * 1000)}ms"


def _envelope(status_code: int, **fields) -> JSONResponse:
    body = IdentifyResponse(**fields)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def create_app(
    settings: Optional[Settings] = None,
    gemini_client: Optional[GeminiClient] = None,
    image_search: Optional[ImageSearchService] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(title=SERVICE_NAME, version=API_VERSION)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.gemini = gemini_client or GeminiClient(settings)
    app.state.image_search = image_search or ImageSearchService(settings)

    @app.on_event("startup")
    def _check_settings():
        """Refuse to start without the credentials every request needs."""
        settings.require_ready()
        logger.info(
            "%s %s ready; models=%s, image search=%s",
            SERVICE_NAME, API_VERSION, ", ".join(settings.models),
            "mock" if app.state.image_search.mock_mode else "unsplash",
        )

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.get("/api/identify")
    def identify_status():
        models = settings.models
        return {
            "status": "OK",
            "service": SERVICE_NAME,
            "version": API_VERSION,
            "timestamp": _now_iso(),
            "features": [
                "Plant identification from images",
                "Automatic retry on overload",
                "Multiple model fallbacks",
                "Malformed JSON repair",
                "Image search term generation",
            ],
            "models": {"primary": models[0] if models else None, "fallbacks": models[1:]},
            "limits": {
                "maxUploadBytes": settings.max_upload_bytes,
                "allowedTypes": list(ALLOWED_MIME_TYPES),
            },
            "usage": 'POST an image with form field "image" to /api/identify',
        }

    @app.post("/api/identify")
    async def identify(request: Request, image: Optional[UploadFile] = File(None)):
        start = time.monotonic()
        try:
            if image is None:
                return JSONResponse(status_code=400, content={"error": "No image file provided"})

            # read one byte past the ceiling so oversized uploads are caught without buffering them whole
            data = await image.read(settings.max_upload_bytes + 1)
            try:
                upload = validate_upload(
                    data, image.content_type, size=getattr(image, "size", None),
                    max_bytes=settings.max_upload_bytes,
                )
            except ImageValidationError as e:
                logger.info("[Identify] rejected upload %r: %s", image.filename, e)
                return JSONResponse(status_code=400, content={"error": str(e)})

            logger.info(
                "[Identify] processing %s (%s, %d KB)",
                image.filename, upload.mime_type, round(upload.size / 1024),
            )

            try:
                result = await identify_plant(request.app.state.gemini, upload)
            except AllModelsExhausted as e:
                logger.error("[Identify] all models failed after %d attempt(s): %s", e.attempts, e)
                return _envelope(
                    503,
                    success=False,
                    error="All Gemini models are currently unavailable",
                    message=str(e) or "Service overloaded. Please try again in a few moments.",
                    model="None",
                    responseTime=_elapsed_ms(start),
                    timestamp=_now_iso(),
                    data=service_unavailable_record(),
                )

            response_time = _elapsed_ms(start)
            record: PlantRecord = result.record.model_copy(
                update={
                    "modelUsed": result.model_used,
                    "analysisTimestamp": _now_iso(),
                    "responseTime": response_time,
                }
            )
            return _envelope(
                200,
                success=True,
                model=result.model_used,
                responseTime=response_time,
                timestamp=_now_iso(),
                data=record,
            )
        except Exception as e:
            logger.exception("[Identify] unexpected failure")
            return _envelope(
                500,
                success=False,
                error="Failed to process image",
                message=str(e) or e.__class__.__name__,
                model="Error",
                responseTime=_elapsed_ms(start),
                timestamp=_now_iso(),
                data=processing_error_record(str(e) or e.__class__.__name__),
            )

    @app.get("/api/images")
    async def images(
        request: Request,
        query: str = Query("plant"),
        terms: Optional[List[str]] = Query(None),
        count: int = Query(6),
        page: int = Query(1),
    ):
        search = request.app.state.image_search
        if terms:
            # repeatable ?terms=...; the top three are joined, `query` is the fallback
            result = await search.images_for_terms(terms, count, page, fallback_name=query)
        else:
            result = await search.search(query, count, page)
        body = {
            "success": True,
            "query": result.query,
            "count": len(result.images),
            "page": result.page,
            "total_pages": result.total_pages,
            "total": result.total,
            "images": [img.model_dump() for img in result.images],
        }
        if result.note:
            body["note"] = result.note
        return body

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
