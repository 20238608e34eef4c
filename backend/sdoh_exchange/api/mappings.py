from typing import List

from fastapi import APIRouter, Depends

from ..core.openapi import MAPPINGS_API_TAG
from ..core.security import get_current_context
from ..schemas.response import CodingDto
from ..services import mappings

router = APIRouter(prefix="/mappings", tags=[MAPPINGS_API_TAG], dependencies=[Depends(get_current_context)])


@router.get("/categories", response_model=List[CodingDto])
def list_categories():
    return mappings.categories()


@router.get("/categories/{code}/servicerequest/codings", response_model=List[CodingDto])
def list_service_request_codings(code: str):
    """Service codes that can be requested within an SDOH category."""
    return mappings.service_request_codings(code)
