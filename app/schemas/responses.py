# ============================================================================
# Common Response Schemas
# ============================================================================
from pydantic import BaseModel
from typing import Optional, List, Generic, TypeVar

T = TypeVar('T')

class BaseResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None

class DataResponse(BaseResponse, Generic[T]):
    data: T

class MessageResponse(BaseModel):
    """Generic message response"""
    message: str
    success: bool = True

class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    error_code: Optional[str] = None
    stack: Optional[str] = None

class PaginatedResponse(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int
    total_pages: int
