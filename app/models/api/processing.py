from pydantic import BaseModel


class ProcessResponse(BaseModel):
    """Response of a scheduler run triggered over HTTP."""

    processed: int


class ReclaimResponse(BaseModel):
    """Response of a stuck-message sweep triggered over HTTP."""

    reset: int


class ErrorResponse(BaseModel):
    error: str
