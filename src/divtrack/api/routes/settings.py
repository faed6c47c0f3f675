"""Settings API routes."""

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from divtrack.config.logging import get_logger
from divtrack.config.preferences import load_preferences, save_preferences
from divtrack.core.models import PriceSource

logger = get_logger()

router = APIRouter(prefix="/api/settings", tags=["settings"])


class PreferencesResponse(BaseModel):
    price_source: str
    auto_refresh_enabled: bool


class PriceSourceRequest(BaseModel):
    value: str = Field(pattern="^(exchange|stash)$")


class AutoRefreshRequest(BaseModel):
    enabled: bool


def _response(request: Request) -> PreferencesResponse:
    return PreferencesResponse(
        price_source=request.app.state.price_source.value,
        auto_refresh_enabled=request.app.state.auto_refresh_enabled,
    )


def _persist(request: Request) -> None:
    path = request.app.state.preferences_path
    prefs = load_preferences(path)
    prefs.price_source = request.app.state.price_source.value
    prefs.auto_refresh_enabled = request.app.state.auto_refresh_enabled
    if not save_preferences(prefs, path):
        raise HTTPException(status_code=500, detail="Failed to save preferences")


@router.get("", response_model=PreferencesResponse)
def get_preferences(request: Request) -> PreferencesResponse:
    """Current valuation preferences."""
    return _response(request)


@router.put("/price-source", response_model=PreferencesResponse)
def set_price_source(body: PriceSourceRequest, request: Request) -> PreferencesResponse:
    """Select the price source used for totals; saved across restarts."""
    request.app.state.price_source = PriceSource(body.value)
    _persist(request)
    logger.info("Price source set to %s", body.value)
    return _response(request)


@router.put("/auto-refresh", response_model=PreferencesResponse)
def set_auto_refresh(body: AutoRefreshRequest, request: Request) -> PreferencesResponse:
    """
    Enable or disable periodic price refresh while a session runs.

    Disabling stops a running refresh loop; enabling takes effect at the
    next session start.
    """
    request.app.state.auto_refresh_enabled = body.enabled
    if not body.enabled:
        request.app.state.price_manager.stop_auto_refresh()
    _persist(request)
    return _response(request)
