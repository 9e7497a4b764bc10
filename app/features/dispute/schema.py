from pydantic import BaseModel, Field
from typing import Optional


class DisputeSubmit(BaseModel):
    # length is checked by DisputeService so the error carries VALIDATION_ERROR
    dispute_reason: str


class DisputeResolve(BaseModel):
    approved: bool
    resolution_notes: Optional[str] = Field(None, max_length=1000)
