from datetime import date, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from smartspendr.api.dependencies import get_app_state, get_current_user
from smartspendr.domain.aggregation import monthly_trend
from smartspendr.domain.categories import CHART_COLORS, CURRENCY_SYMBOLS, QUICK_AMOUNTS, list_categories
from smartspendr.domain.export import export_csv, export_filename
from smartspendr.models import Report, TrendPoint, User
from smartspendr.services.dashboard import DashboardSummary, build_dashboard
from smartspendr.services.reports import build_range_report, build_report
from smartspendr.state import AppState

router = APIRouter(prefix="/api")


@router.get("/reports", response_model=Report)
async def get_report(
    user: Annotated[User, Depends(get_current_user)],
    app_state: Annotated[AppState, Depends(get_app_state)],
    range_label: Annotated[str, Query(alias="range")] = "month",
    category: str | None = None,
    start: date | None = None,
    end: date | None = None,
) -> Report:
    records = app_state.snapshot.expenses
    if start is not None or end is not None:
        if start is None or end is None:
            raise HTTPException(status_code=400, detail="Both start and end are required")
        return build_report(records, start, end, category)

    try:
        return build_range_report(records, range_label, datetime.now(), category)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/dashboard", response_model=DashboardSummary)
async def get_dashboard(
    user: Annotated[User, Depends(get_current_user)],
    app_state: Annotated[AppState, Depends(get_app_state)],
) -> DashboardSummary:
    return build_dashboard(app_state.snapshot.expenses, datetime.now())


@router.get("/export.csv")
async def export_expenses(
    user: Annotated[User, Depends(get_current_user)],
    app_state: Annotated[AppState, Depends(get_app_state)],
) -> Response:
    return Response(
        content=export_csv(app_state.snapshot.expenses),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(date.today())}"'},
    )


@router.get("/categories")
async def get_categories() -> list[dict[str, str]]:
    return [
        {"value": info.value.value, "label": info.label, "color": info.color, "icon": info.icon}
        for info in list_categories()
    ]


@router.get("/trends", response_model=list[TrendPoint])
async def get_trends(
    user: Annotated[User, Depends(get_current_user)],
    app_state: Annotated[AppState, Depends(get_app_state)],
    months: Annotated[int, Query(ge=1, le=36)] = 12,
) -> list[TrendPoint]:
    return monthly_trend(app_state.snapshot.expenses, datetime.now(), months)


@router.get("/form-options")
async def get_form_options() -> dict[str, object]:
    return {
        "quick_amounts": list(QUICK_AMOUNTS),
        "currencies": CURRENCY_SYMBOLS,
        "chart_colors": list(CHART_COLORS),
    }
