"""Feed API router - serves hotentry feeds and pages."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse, Response

from ..models import Category, OutputFormat, RenderedResponse, SummaryMode
from ..services.dates import parse_yyyymmdd
from ..services.pipeline import FeedPipeline, FeedRequest

router = APIRouter()

DEFAULT_LOCATION = "/all?format=html&summary=ai"


def get_pipeline(request: Request) -> FeedPipeline:
    return request.app.state.pipeline


def to_response(rendered: RenderedResponse) -> Response:
    return Response(content=rendered.body, status_code=rendered.status, headers=rendered.headers)


@router.get("/")
async def root():
    """Default view: every category with the AI summary."""
    return RedirectResponse(url=DEFAULT_LOCATION, status_code=302)


@router.get("/{category}")
async def get_feed(
    request: Request,
    category: Category,
    format: OutputFormat = Query(OutputFormat.RSS),
    date: Optional[str] = Query(None, pattern=r"^\d{8}$", description="YYYYMMDD"),
    summary: Optional[SummaryMode] = Query(None),
    revalidate: Optional[Literal["true", "1"]] = Query(None),
    pipeline: FeedPipeline = Depends(get_pipeline),
):
    """Hotentry listing for a category and day as RSS, Atom, JSON Feed or HTML.

    Without `date` the previous day in JST is served, falling back to
    earlier days while the upstream has nothing yet.
    """
    if date is not None:
        try:
            parse_yyyymmdd(date)
        except ValueError:
            raise HTTPException(status_code=400, detail="YYYYMMDD形式で指定してください")

    rendered = await pipeline.handle(FeedRequest(
        category=category,
        date=date,
        format=format,
        summary=summary,
        revalidate=revalidate is not None,
        base_url=str(request.base_url).rstrip("/"),
    ))
    return to_response(rendered)
