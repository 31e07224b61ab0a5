from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from ..analyzer import MarketAnalyzer
from ..core.errors import (
    AnalysisTimeout,
    EventNotFound,
    InputError,
    NoMarketsFound,
    RateLimited,
    UpstreamUnavailable,
)

router = APIRouter()

QUOTA_EXCEEDED = "AI quota exceeded. Please try again later or use cached markets."


class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(min_length=1)
    force_refresh: bool = Field(default=False, alias="forceRefresh")


def get_analyzer(request: Request) -> MarketAnalyzer:
    analyzer = getattr(request.app.state, "analyzer", None)
    if analyzer is None:
        raise HTTPException(status_code=500, detail="Analyzer is not available")
    return analyzer


@router.get("/healthz")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/v1/analyze")
async def analyze_event(
    body: AnalyzeRequest,
    analyzer: MarketAnalyzer = Depends(get_analyzer),
) -> dict[str, Any]:
    try:
        response = await analyzer.analyze(body.url, force_refresh=body.force_refresh)
    except InputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (EventNotFound, NoMarketsFound) as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except RateLimited as exc:
        headers = {"Retry-After": str(int(exc.retry_after))} if exc.retry_after else None
        raise HTTPException(status_code=429, detail=QUOTA_EXCEEDED, headers=headers) from exc
    except UpstreamUnavailable as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except AnalysisTimeout as exc:
        raise HTTPException(status_code=504, detail=str(exc)) from exc
    return response.serialize()


__all__ = ["router", "get_analyzer", "AnalyzeRequest"]
