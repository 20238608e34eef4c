from typing import List

from fastapi import APIRouter, Depends

from ..core.openapi import SUPPORT_API_TAG
from ..core.security import require_patient, require_scope
from ..schemas.response import ConditionDto, ConsentResponseDto, GoalDto, OrganizationDto
from ..services.support_service import SupportService
from .deps import get_support_service

router = APIRouter(prefix="/support", tags=[SUPPORT_API_TAG])


@router.get("/conditions", response_model=List[ConditionDto])
def list_conditions(
    context=Depends(require_scope("Condition")),
    service: SupportService = Depends(get_support_service),
):
    """Active SDOH conditions of the patient in context."""
    return service.conditions(require_patient(context))


@router.get("/goals", response_model=List[GoalDto])
def list_goals(
    context=Depends(require_scope("Goal")),
    service: SupportService = Depends(get_support_service),
):
    """Open SDOH goals of the patient in context."""
    return service.goals(require_patient(context))


@router.get("/consents", response_model=List[ConsentResponseDto])
def list_consents(
    context=Depends(require_scope("Consent")),
    service: SupportService = Depends(get_support_service),
):
    return service.consents(require_patient(context))


@router.get("/organizations", response_model=List[OrganizationDto])
def list_organizations(
    _context=Depends(require_scope("Organization")),
    service: SupportService = Depends(get_support_service),
):
    """Community based organizations that can be assigned a referral."""
    return service.organizations()
