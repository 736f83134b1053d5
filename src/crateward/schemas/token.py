"""Pydantic schemas for API tokens.

Separate "Create" (input) from "Read" (output). Only ApiTokenCreated
carries the token value; it is returned once, at creation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ApiTokenCreate(BaseModel):
    name: str


class ApiTokenRead(BaseModel):
    id: int
    name: str
    created_at: datetime
    last_used_at: Optional[datetime] = None
    revoked: bool = False

    model_config = {"from_attributes": True}


class ApiTokenCreated(ApiTokenRead):
    token: str


class ApiTokenList(BaseModel):
    api_tokens: list[ApiTokenRead]


class ApiTokenCreatedResponse(BaseModel):
    api_token: ApiTokenCreated
