"""JSON API endpoints for catalog, favourites, price history and alerts."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from cryptotracker.dashboard.update_loop import build_snapshot
from cryptotracker.exceptions import InvalidInputError
from cryptotracker.models import CatalogResult, SortOption, TimePeriod

log = structlog.get_logger(__name__)

router = APIRouter()


def _result_payload(result: CatalogResult) -> dict:
    return {
        "source": result.source.value,
        "is_offline": result.is_offline,
        "message": result.message,
        "records": [r.to_dict() for r in result.records],
    }


def _parse_sort(sort_by: str) -> SortOption:
    try:
        return SortOption(sort_by)
    except ValueError:
        raise InvalidInputError(f"Unknown sort order: {sort_by}") from None


def _parse_period(days: str) -> TimePeriod:
    try:
        return TimePeriod(days)
    except ValueError:
        raise InvalidInputError(f"Unsupported history period: {days} days") from None


@router.get("/status")
async def get_status(request: Request) -> JSONResponse:
    """Lifecycle flags, preloader and monitor state, and local store counts."""
    status = await build_snapshot(request.app)
    return JSONResponse(content=status)


@router.get("/assets")
async def get_assets(
    request: Request, page: int = 1, sort_by: str = SortOption.MARKET_CAP.value
) -> JSONResponse:
    """One catalog page, live when online, otherwise from the local store."""
    repository = request.app.state.repository
    result = await repository.load_page(page, _parse_sort(sort_by))
    payload = _result_payload(result)
    payload["page"] = page
    return JSONResponse(content=payload)


@router.get("/assets/{coin_id}/history")
async def get_price_history(request: Request, coin_id: str, days: str = "1") -> JSONResponse:
    """Price series for one coin over 1, 7 or 30 days."""
    repository = request.app.state.repository
    points = await repository.price_history(coin_id, _parse_period(days))
    return JSONResponse(content=[
        {
            "index": p.index,
            "price": p.price,
            "timestamp": p.timestamp.isoformat() if p.timestamp else None,
        }
        for p in points
    ])


@router.get("/search")
async def search_assets(request: Request, q: str = "") -> JSONResponse:
    repository = request.app.state.repository
    result = await repository.search(q)
    return JSONResponse(content=_result_payload(result))


@router.get("/favorites")
async def get_favorites(request: Request) -> JSONResponse:
    """Favourite ids plus their records, live when possible."""
    repository = request.app.state.repository
    favorites = request.app.state.favorites

    ids = sorted(favorites.list())
    result = await repository.load_favorites(ids)
    payload = _result_payload(result)
    payload["ids"] = ids
    return JSONResponse(content=payload)


@router.post("/favorites/{coin_id}")
async def add_favorite(request: Request, coin_id: str) -> JSONResponse:
    favorites = request.app.state.favorites
    changed = await favorites.add(coin_id)
    log.info("favorite_added_via_dashboard", coin_id=coin_id, changed=changed)
    return JSONResponse(content={"coin_id": coin_id, "favorite": True, "changed": changed})


@router.delete("/favorites/{coin_id}")
async def remove_favorite(request: Request, coin_id: str) -> JSONResponse:
    favorites = request.app.state.favorites
    changed = await favorites.remove(coin_id)
    log.info("favorite_removed_via_dashboard", coin_id=coin_id, changed=changed)
    return JSONResponse(content={"coin_id": coin_id, "favorite": False, "changed": changed})


@router.get("/alerts")
async def get_alerts(request: Request, limit: int = 50) -> JSONResponse:
    """Most recent price alerts, newest first."""
    alert_history = request.app.state.alert_history
    return JSONResponse(content=alert_history.recent(limit))
