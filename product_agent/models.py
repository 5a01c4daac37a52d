from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ApiModel(BaseModel):
    """Request model accepting both camelCase aliases and field names."""
    model_config = ConfigDict(populate_by_name=True)


class SearchRequest(ApiModel):
    query: Optional[str] = Field(default=None, description="Product name, category or customer phrasing")
    include_sourcing: bool = Field(default=True, alias="includeSourcing")


class AvailabilityRequest(ApiModel):
    query: Optional[str] = Field(default=None, description="Raw customer message")
    quantity: Optional[int] = Field(default=None, ge=0, description="Overrides any quantity found in the text")
    urgent: Optional[bool] = Field(default=None)


class MultiAvailabilityRequest(ApiModel):
    query: Optional[str] = Field(default=None, description="Message that may request several products")
    urgent: Optional[bool] = Field(default=None, description="Default urgency for every item")


class ResolveRequest(ApiModel):
    terms: List[str] = Field(default_factory=list)


class ScraperRunRequest(ApiModel):
    mode: str = Field(default="incremental", description="'incremental' or 'full'")
    dry_run: bool = Field(default=False, alias="dryRun")
    category_url: Optional[str] = Field(default=None, alias="categoryUrl")
    category_name: Optional[str] = Field(default=None, alias="categoryName")
    limit: Optional[int] = Field(default=None, ge=1)


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class SuccessEnvelope(BaseModel):
    """Response envelope for every successful call."""
    success: bool = True
    data: Any


class ErrorEnvelope(BaseModel):
    success: bool = False
    error: ErrorBody
