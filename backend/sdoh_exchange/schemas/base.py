from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """JSON bodies use camelCase keys, as the UI expects."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ValidatedDto(CamelModel):
    """A DTO that reports problems found while converting FHIR resources instead of failing."""
    errors: List[str] = Field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(message)
