"""
Pydantic models for chunked upload API requests and responses
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class ReassembleRequest(BaseModel):
    """Request model for POST /api/uploads/reassemble"""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias='sessionId', min_length=1)
    file_name: str = Field(..., alias='fileName', min_length=1)
    total_chunks: int = Field(..., alias='totalChunks', ge=1)


class ReassembleResponse(BaseModel):
    """Response model for a successful reassembly"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    file_name: str = Field(..., serialization_alias='fileName')
    file_size: int = Field(..., serialization_alias='fileSize')
    message: str


class ReassembleErrorResponse(BaseModel):
    """Error body returned when reassembly fails"""
    error: str
    retryable: bool
    chunk_index: Optional[int] = Field(None, serialization_alias='chunkIndex')


class UploadStatusResponse(BaseModel):
    """Response model for GET /api/uploads/{session_id}/status"""
    session_id: str
    file_name: Optional[str] = None
    status: str
    total_chunks: Optional[int] = None
    uploaded_chunks: Optional[int] = None
    file_size: Optional[int] = None
    assembled_file_path: Optional[str] = None
