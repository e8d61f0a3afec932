from datetime import datetime
from pydantic import BaseModel, Field


class TenantCreate(BaseModel):
    slug: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9][a-z0-9-]*$")
    name: str = Field(min_length=1, max_length=200)


class TenantOut(BaseModel):
    id: str
    slug: str
    name: str
    is_active: bool
    created_at: datetime
