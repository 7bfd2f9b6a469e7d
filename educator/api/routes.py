"""
HTTP endpoints for the virtual educator
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, File, Form, UploadFile
from fastapi.responses import JSONResponse

from educator.core.errors import PipelineFailure
from educator.core.orchestrator import TurnOrchestrator
from educator.core.security_utils import audit_log, sanitize_log_data
from educator.models.reply import ChatReply, ChatRequest
from educator.models.transcription import TranscriptionResult
from educator.services.recognition_service import AUTO_DETECT
from educator.services.synthesis_service import OPENAI_VOICES

logger = logging.getLogger(__name__)
router = APIRouter(tags=["educator"])

orchestrator = TurnOrchestrator()


def transcription_body(result: TranscriptionResult) -> Dict[str, Any]:
    return {
        "text": result.text,
        "language": result.language,
        "duration": result.duration,
        "words": [word.model_dump() for word in result.words],
    }


def failure_response(error: str, failure: PipelineFailure) -> JSONResponse:
    """
    Build the 500 body for a failed upload-driven request

    Args:
        error: Endpoint-level summary
        failure: Pipeline failure carrying stage, index and details
    """
    return JSONResponse(
        status_code=500,
        content={
            "error": error,
            "stage": failure.stage,
            "index": failure.index,
            "details": failure.details,
        }
    )


@router.get("/voices")
async def list_voices():
    """List the speech voices available for synthesis"""
    return {"voices": OPENAI_VOICES}


@router.post("/transcribe")
@audit_log("transcribe_audio")
async def transcribe(
    audio: Optional[UploadFile] = File(None),
    language: str = Form(AUTO_DETECT)
):
    """
    Transcribe an uploaded recording

    The upload is removed whether transcription succeeds or fails.
    """
    logger.info(f"Transcription request - {sanitize_log_data({'filename': getattr(audio, 'filename', None), 'language': language})}")

    try:
        result = await orchestrator.transcribe_upload(audio, language)
    except PipelineFailure as e:
        logger.error(f"Transcription error: {e}")
        return failure_response("Failed to transcribe audio", e)

    logger.info(f"Transcription successful: {result.text[:50]!r} ({result.language})")
    return {
        "success": True,
        "transcription": result.text,
        "language": result.language,
        "duration": result.duration,
        "words": [word.model_dump() for word in result.words],
        "detectedLanguage": result.language,
    }


@router.post("/chat")
@audit_log("chat_turn")
async def chat(request: Optional[ChatRequest] = Body(None)):
    """
    Text turn: reply messages with audio, lip-sync and animation tags

    A missing body is an empty message and gets the greeting. Pipeline
    failures are turned into a 500 by the application handler.
    """
    request = request or ChatRequest()
    reply: ChatReply = await orchestrator.chat(request.message, request.language or "en")
    return reply.model_dump(by_alias=True, mode="json")


@router.post("/voice-chat")
@audit_log("voice_chat_turn")
async def voice_chat(
    audio: Optional[UploadFile] = File(None),
    language: str = Form(AUTO_DETECT)
):
    """
    Voice turn: transcribe the recording and reply in the detected language
    """
    try:
        result = await orchestrator.handle_voice_turn(audio, language)
    except PipelineFailure as e:
        logger.error(f"Voice chat error: {e}")
        return failure_response("Failed to process voice chat", e)

    reply = result.reply.model_dump(by_alias=True, mode="json")
    return {
        "success": True,
        "transcription": transcription_body(result.transcription),
        "response": reply,
        "detectedLanguage": result.transcription.language,
        "flow": "voice-to-voice",
    }
