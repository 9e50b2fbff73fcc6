"""Pydantic schemas for resource definition input."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================
# Definition Schemas
# ============================================

class ResourceDefinition(BaseModel):
    """One declarative resource definition as supplied by the caller."""

    id: str = Field(min_length=1, max_length=255)
    type: str = Field(min_length=1)
    properties: Dict[str, Any] = Field(default_factory=dict)
    depends_on: List[str] = Field(default_factory=list)
    timeout_seconds: Optional[float] = Field(default=None, gt=0)

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    @field_validator("depends_on", mode="before")
    @classmethod
    def _coerce_single_reference(cls, value):
        if isinstance(value, str):
            return [value]
        return value


class DefinitionDocument(BaseModel):
    """File layout accepted by the CLI: {"resources": [...]}."""

    resources: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")
