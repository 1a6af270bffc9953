"""
Pydantic schemas for carbon project endpoints.

Prices are integer cents per credit; one credit is one tonne of CO2e.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from carbon_market.models.project import (
    CarbonStandard,
    ProjectStatus,
    ProjectType,
    VerificationDecision,
)
from carbon_market.schemas.common import Pagination


class ProjectCreateRequest(BaseModel):
    """Request body for POST /projects."""
    title: str = Field(min_length=5, max_length=200)
    description: str = Field(min_length=50, max_length=5000)
    location: str = Field(min_length=2, max_length=255)
    country: str = Field(min_length=2, max_length=100)
    project_type: ProjectType
    standard: CarbonStandard
    methodology: str = Field(min_length=2, max_length=255)
    estimated_credits: int = Field(gt=0, le=1_000_000, description="Tonnes of CO2e; one credit each")
    price_per_credit_cents: int = Field(gt=0, description="Price per credit in cents")
    currency: str = Field("USD", min_length=3, max_length=3)


class ProjectResponse(BaseModel):
    """Public representation of a project."""
    id: uuid.UUID
    owner_id: uuid.UUID
    title: str
    description: str
    location: str
    country: str
    project_type: ProjectType
    standard: CarbonStandard
    methodology: str
    estimated_credits: int
    price_per_credit_cents: int
    currency: str
    status: ProjectStatus
    verification_date: datetime | None
    credits_minted: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ProjectDetailResponse(ProjectResponse):
    """A project plus the number of credits currently for sale."""
    available_credits: int


class ProjectListResponse(BaseModel):
    projects: list[ProjectResponse]
    pagination: Pagination


class VerificationRequest(BaseModel):
    """Request body for POST /projects/{id}/verify."""
    decision: VerificationDecision
    comments: str | None = Field(None, max_length=2000)


class VerificationResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    verifier_id: uuid.UUID
    decision: VerificationDecision
    comments: str | None
    verified_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class VerifyProjectResponse(BaseModel):
    """Outcome of a verification: the updated project and credits minted."""
    project: ProjectResponse
    verification: VerificationResponse
    credits_minted: int
