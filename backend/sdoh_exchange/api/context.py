from fastapi import APIRouter, Depends

from ..core.openapi import CONTEXT_API_TAG
from ..core.security import require_scope
from ..schemas.response import ContextResponse
from ..services.context_service import get_context
from .deps import get_ehr_client

router = APIRouter(tags=[CONTEXT_API_TAG])


@router.get("/current-context", response_model=ContextResponse)
def current_context(
    context=Depends(require_scope("Patient")),
    client=Depends(get_ehr_client),
):
    """Patient in context and the logged in user."""
    return get_context(client, context)
