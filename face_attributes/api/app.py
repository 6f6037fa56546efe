"""
Prediction API: upload one image, receive an age and gender estimate.

- POST /api/predict with a multipart field named `image`
- Other methods on /api/predict return 405 with the same envelope
- GET /api/models/status reports the model loading state
"""

# -----------------------------------------------------------------------------
# Standard library
# -----------------------------------------------------------------------------
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

# -----------------------------------------------------------------------------
# Third-party
# -----------------------------------------------------------------------------
from fastapi import APIRouter, Depends, FastAPI, File, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

# -----------------------------------------------------------------------------
# Application
# -----------------------------------------------------------------------------
from ..common.errors import DecodeError, DimensionError, NotLoadedError, ValidationError
from ..config import default_config
from ..pipeline.factory import Pipeline, create_pipeline
from ..pipeline.models import AgeGenderPrediction
from ..preprocessing.validation import BYTES_PER_MB, validate_upload

# -----------------------------------------------------------------------------
# Router and helpers
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)
router = APIRouter(tags=["predict"])

METHOD_NOT_ALLOWED = "Method not allowed. Use POST to upload images."


class PredictionData(BaseModel):
    age: int
    gender: str
    ageConfidence: float
    genderConfidence: float
    processingTime: int


class PredictionResponse(BaseModel):
    success: bool
    data: Optional[PredictionData] = None
    error: Optional[str] = None


def envelope(status_code: int, data: Optional[PredictionData] = None, error: Optional[str] = None) -> JSONResponse:
    body = PredictionResponse(success=error is None, data=data, error=error)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def get_pipeline(request: Request) -> Pipeline:
    return request.app.state.pipeline


def get_max_bytes(request: Request) -> int:
    return int(request.app.state.config["validation"]["MAX_FILE_SIZE_MB"] * BYTES_PER_MB)


def run_prediction(pipeline: Pipeline, data: bytes) -> AgeGenderPrediction:
    """Normalize and predict. Blocking; run it off the event loop."""
    normalized = pipeline.normalizer.normalize(data)
    return pipeline.engine.predict(normalized)


@router.post("/api/predict")
async def predict(
    image: Optional[UploadFile] = File(None),
    pipeline: Pipeline = Depends(get_pipeline),
    max_bytes: int = Depends(get_max_bytes),
):
    """Estimate age and gender for one uploaded JPEG, PNG or WebP image."""
    start_time = time.perf_counter()

    if image is None:
        return envelope(status.HTTP_400_BAD_REQUEST, error="No image file provided")

    contents = await image.read()
    try:
        validate_upload(contents, image.content_type, max_bytes=max_bytes)
        prediction = await asyncio.to_thread(run_prediction, pipeline, contents)
    except (ValidationError, DecodeError, DimensionError) as e:
        logger.warning("predict 400: %s", e)
        return envelope(status.HTTP_400_BAD_REQUEST, error=str(e))
    except NotLoadedError as e:
        logger.warning("predict 503: %s", e)
        return envelope(status.HTTP_503_SERVICE_UNAVAILABLE, error=str(e))
    except Exception as e:
        logger.error("Prediction API error: %s", e, exc_info=True)
        return envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, error=str(e) or "Internal server error")

    processing_time = int(round((time.perf_counter() - start_time) * 1000))
    return envelope(
        status.HTTP_200_OK,
        data=PredictionData(**prediction.to_dict(), processingTime=processing_time),
    )


@router.api_route("/api/predict", methods=["GET", "PUT", "DELETE", "PATCH"])
async def predict_method_not_allowed():
    return envelope(status.HTTP_405_METHOD_NOT_ALLOWED, error=METHOD_NOT_ALLOWED)


@router.get("/api/models/status")
async def model_status(pipeline: Pipeline = Depends(get_pipeline)) -> Dict[str, Any]:
    """Current model loading snapshot."""
    return pipeline.loader.state.to_dict()


@router.get("/health")
async def health():
    return {"status": "ok"}


# -----------------------------------------------------------------------------
# Error handlers
# -----------------------------------------------------------------------------
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed form fields (e.g. `image` sent as text) are bad uploads."""
    logger.warning("predict 400: invalid request %s", exc.errors())
    return envelope(status.HTTP_400_BAD_REQUEST, error="Invalid image upload")


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework errors (unparseable multipart, unknown routes) keep their status code."""
    return envelope(exc.status_code, error=str(exc.detail))


def create_app(
    pipeline: Optional[Pipeline] = None,
    config: Optional[Dict[str, Dict[str, Any]]] = None,
    load_models: bool = True,
) -> FastAPI:
    """
    Build the API application.

    Args:
        pipeline: Pre-built pipeline (tests inject fakes here).
        config: Configuration sections, defaults when omitted.
        load_models: Start loading models in the background at startup.
    """
    config = config or default_config()
    pipeline = pipeline or create_pipeline(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if load_models:
            pipeline.loader.start(background=True)
            logger.info("Model loading started in background")
        yield
        pipeline.loader.dispose()
        logger.info("Models disposed")

    app = FastAPI(title="Face Attributes API", lifespan=lifespan)
    app.state.pipeline = pipeline
    app.state.config = config
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.include_router(router)
    return app
