from fastapi import APIRouter
from fastapi.responses import JSONResponse

from smartspendr.cache.controller import FALLBACK_DESCRIPTOR
from smartspendr.core import settings

router = APIRouter()


@router.get(settings.DESCRIPTOR_PATH)
async def app_descriptor() -> JSONResponse:
    return JSONResponse(
        content=FALLBACK_DESCRIPTOR.model_dump(mode="json", exclude_none=True),
        media_type="application/manifest+json",
    )
