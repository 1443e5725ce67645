from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from smartspendr.core import configuration

router = APIRouter(prefix="/api")


@router.get("/config")
async def get_config() -> dict[str, object]:
    return configuration.build_config_context()


@router.post("/config")
async def save_config(request: Request) -> JSONResponse:
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"detail": "Invalid JSON payload"})
    if not isinstance(payload, dict):
        return JSONResponse(status_code=400, content={"detail": "Expected a JSON object"})

    values = {str(key): "" if value is None else str(value) for key, value in payload.items()}
    errors, updates = configuration.apply_config_updates(values)
    if errors:
        return JSONResponse(
            status_code=422,
            content={"errors": errors, **configuration.build_config_context(field_errors=errors)},
        )
    configuration.apply_runtime_updates(request.app, updates)
    return JSONResponse(content={"status": "saved", "updated": sorted(updates)})
