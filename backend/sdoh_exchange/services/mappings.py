"""
Catalogue of SDOH domains (ServiceRequest.category) and the SNOMED CT service codes
(ServiceRequest.code) that can be requested within each domain.
"""
from dataclasses import dataclass, field
from typing import Dict, List

from ..core.exceptions import InvalidRequestError, NotFoundError
from ..fhir.profiles import SDOHCC_TEMPORARY_CODES, SNOMED_SYSTEM
from ..schemas.response import CodingDto


@dataclass(frozen=True)
class Code:
    system: str
    code: str
    display: str

    def to_coding(self) -> Dict:
        return {"system": self.system, "code": self.code, "display": self.display}

    def to_dto(self) -> CodingDto:
        return CodingDto(code=self.code, display=self.display)


@dataclass(frozen=True)
class Category:
    code: Code
    service_requests: List[Code] = field(default_factory=list)


def _category(code: str, display: str, *requests) -> Category:
    return Category(
        code=Code(SDOHCC_TEMPORARY_CODES, code, display),
        service_requests=[Code(SNOMED_SYSTEM, c, d) for c, d in requests],
    )


CATEGORIES: List[Category] = [
    _category(
        "food-insecurity", "Food Insecurity",
        ("467771000124109", "Assistance with application for food pantry program"),
        ("467681000124101", "Assistance with application for Supplemental Nutrition Assistance Program"),
        ("467741000124108", "Assistance with application for Women, Infants and Children program"),
        ("710925007", "Provision of food"),
    ),
    _category(
        "housing-instability", "Housing Instability",
        ("1997241000124102", "Referral to housing assistance program"),
        ("1997271000124104", "Assistance with application for housing assistance program"),
    ),
    _category(
        "transportation-insecurity", "Transportation Insecurity",
        ("1997201000124104", "Referral to transportation support program"),
        ("1997151000124104", "Assistance with application for paratransit program"),
    ),
    _category(
        "financial-insecurity", "Financial Insecurity",
        ("1997121000124109", "Referral to financial counseling program"),
        ("1997091000124103", "Assistance with application for utility assistance program"),
    ),
]

_BY_CODE: Dict[str, Category] = {c.code.code: c for c in CATEGORIES}


def categories() -> List[CodingDto]:
    return [c.code.to_dto() for c in CATEGORIES]


def find_category(code: str) -> Category:
    category = _BY_CODE.get(code)
    if category is None:
        raise NotFoundError(f"SDOH category '{code}' is not supported")
    return category


def service_request_codings(category_code: str) -> List[CodingDto]:
    return [r.to_dto() for r in find_category(category_code).service_requests]


def resolve(category_code: str, request_code: str) -> tuple:
    """Full (category, request) codes of a new referral. Unknown pairs are a client error."""
    category = _BY_CODE.get(category_code)
    if category is None:
        raise InvalidRequestError(f"SDOH category '{category_code}' is not supported")
    for request in category.service_requests:
        if request.code == request_code:
            return category.code, request
    raise InvalidRequestError(
        f"Service request code '{request_code}' does not belong to category '{category_code}'"
    )
