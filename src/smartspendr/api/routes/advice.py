import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from smartspendr.api.dependencies import get_advice, get_app_state, get_current_user
from smartspendr.api.schemas import AdviceRequest, AdviceResponse
from smartspendr.integration.advice import AdviceClient
from smartspendr.logger import get_logger
from smartspendr.models import User
from smartspendr.services.dashboard import spending_insights
from smartspendr.state import AppState

logger = get_logger(__name__)

router = APIRouter(prefix="/api")


@router.post("/advice", response_model=AdviceResponse)
async def ask_advice(
    req: AdviceRequest,
    user: Annotated[User, Depends(get_current_user)],
    app_state: Annotated[AppState, Depends(get_app_state)],
    advice: Annotated[AdviceClient, Depends(get_advice)],
) -> AdviceResponse:
    query = req.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Query is required")

    # The OpenAI client is synchronous.
    result = await asyncio.to_thread(advice.advise, query, app_state.snapshot.expenses)
    return AdviceResponse(response=result.text, source=result.source)


@router.get("/insights")
async def get_insights(
    user: Annotated[User, Depends(get_current_user)],
    app_state: Annotated[AppState, Depends(get_app_state)],
) -> dict[str, str]:
    snapshot = app_state.snapshot
    return {"insights": spending_insights(snapshot.expenses, snapshot.preferences.currency)}
