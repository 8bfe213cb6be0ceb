"""Interrogation router – read every property of LightTools data keys."""

from fastapi import APIRouter, Depends

import main
from models import InterrogationRequest, InterrogationResponse

router = APIRouter()


@router.post("/interrogate", response_model=InterrogationResponse)
async def interrogate(
    request: InterrogationRequest,
    _: None = Depends(main.verify_api_key),
) -> InterrogationResponse:
    """Dump each key's property list and read every property (scalars and meshes)."""
    return await main._run_endpoint(
        "/interrogate", InterrogationResponse,
        lambda: main.lighttools_handler.interrogate_keys(
            request.keys,
            save_directory=request.save_directory,
            write_files=request.write_files,
        ),
    )
