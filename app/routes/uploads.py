"""
Chunked Upload Routes

Endpoints for reassembling chunked video uploads and polling their status.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from app.dependencies import get_reassembler, get_session_store
from app.middleware.auth import verify_supabase_jwt
from app.models.upload import (
    ReassembleErrorResponse,
    ReassembleRequest,
    ReassembleResponse,
    UploadStatusResponse,
)
from core.reassembler import ChunkReassembler, MissingChunkError, ReassemblyError
from core.session_store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/reassemble")
async def reassemble_upload(
    request: ReassembleRequest,
    user_id: str = Depends(verify_supabase_jwt),
    reassembler: ChunkReassembler = Depends(get_reassembler)
):
    """
    Join the uploaded chunks of a session into the destination video

    Responds as soon as the assembled file exists; chunk cleanup keeps
    running in the background.
    """
    logger.info(f"🎬 Reassembly requested by {user_id} for session {request.session_id}")

    try:
        result = await reassembler.reassemble(
            request.session_id,
            request.file_name,
            request.total_chunks
        )
    except ReassemblyError as e:
        error = ReassembleErrorResponse(
            error=str(e),
            retryable=e.retryable,
            chunk_index=e.index if isinstance(e, MissingChunkError) else None
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error.model_dump(by_alias=True, exclude_none=True)
        )

    response = ReassembleResponse(
        file_name=result.file_name,
        file_size=result.file_size,
        message='File assembled successfully'
    )
    return response.model_dump(by_alias=True)


@router.get("/{session_id}/status", response_model=UploadStatusResponse)
def get_upload_status(
    session_id: str,
    user_id: str = Depends(verify_supabase_jwt),
    sessions: SessionStore = Depends(get_session_store)
):
    """Get the current state of an upload session for polling"""
    session = sessions.get(session_id)
    if not session:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Upload session not found")

    return UploadStatusResponse(
        session_id=session['session_id'],
        file_name=session.get('file_name'),
        status=session.get('status') or 'unknown',
        total_chunks=session.get('total_chunks'),
        uploaded_chunks=session.get('uploaded_chunks'),
        file_size=session.get('file_size'),
        assembled_file_path=session.get('assembled_file_path'),
    )
