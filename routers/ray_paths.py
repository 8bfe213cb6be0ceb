"""Ray paths router – summary, power interval screenshots, visibility restore."""


from fastapi import APIRouter, Depends

import main
from models import (
    RayPathSummaryRequest, RayPathSummaryResponse,
    PowerIntervalsRequest, PowerIntervalsResponse,
    RestoreVisibilityRequest, RestoreVisibilityResponse,
)

router = APIRouter()


@router.post("/ray-paths/summary", response_model=RayPathSummaryResponse)
async def ray_path_summary(
    request: RayPathSummaryRequest,
    _: None = Depends(main.verify_api_key),
) -> RayPathSummaryResponse:
    """
    Read every ray path of a receiver and list the source and final surface
    names available as filters.
    """
    return await main._run_endpoint(
        "/ray-paths/summary", RayPathSummaryResponse,
        lambda: main.lighttools_handler.get_ray_path_summary(request.receiver),
    )


@router.post("/ray-paths/power-intervals", response_model=PowerIntervalsResponse)
async def power_intervals(
    request: PowerIntervalsRequest,
    _: None = Depends(main.verify_api_key),
) -> PowerIntervalsResponse:
    """
    For each interval, show only that interval's ray paths, capture the view,
    and save the rays' data. Every ray path is visible again afterwards.

    Files are written on the worker machine; the response lists their paths.
    """
    return await main._run_endpoint(
        "/ray-paths/power-intervals", PowerIntervalsResponse,
        lambda: main.lighttools_handler.visualize_power_intervals(
            receiver=request.receiver,
            intervals=[i.to_interval() for i in request.intervals],
            source_filter=request.source_filter,
            surface_filter=request.surface_filter,
            save_directory=request.save_directory,
            capture=request.capture,
            base_name=request.base_name,
            image_format=request.image_format,
        ),
    )


@router.post("/ray-paths/restore-visibility", response_model=RestoreVisibilityResponse)
async def restore_visibility(
    request: RestoreVisibilityRequest,
    _: None = Depends(main.verify_api_key),
) -> RestoreVisibilityResponse:
    """Make every ray path visible, e.g. after a worker crash mid-run."""
    return await main._run_endpoint(
        "/ray-paths/restore-visibility", RestoreVisibilityResponse,
        lambda: main.lighttools_handler.restore_visibility(request.receiver),
    )
