from pydantic import BaseModel, Field
from typing import Any, Optional
import uuid


def new_request_id() -> str:
    return uuid.uuid4().hex


class SuccessResponse(BaseModel):
    """Envelope for every successful API response; errors use the same request_id field."""
    success: bool = Field(default=True)
    request_id: str = Field(default_factory=new_request_id)
    data: Optional[Any] = None
