import json
import logging
from contextlib import aclosing
from typing import AsyncGenerator, Literal

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from app.models.stream_types import ChatMessage, StreamChunk
from app.services.ai_gateway_service import AIGatewayError, ai_gateway_service
from app.services.chat_service import chat_service
from app.services.stream_assembler import TextBufferSink, iter_deltas

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/chat", tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class ChatMessageModel(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: list[ChatMessageModel] = Field(..., min_length=1)

    def to_messages(self) -> list[ChatMessage]:
        return [{"role": m.role, "content": m.content} for m in self.messages]


def _error_response(error: AIGatewayError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content={"error": error.message})


async def _prime(
    chunks: AsyncGenerator[bytes, None],
) -> AsyncGenerator[bytes, None]:
    """
    Pull the first chunk eagerly so upstream status errors surface before
    the streaming response has committed to a 200.
    """
    try:
        first_chunk = await anext(chunks)
    except StopAsyncIteration:
        first_chunk = None

    async def replay() -> AsyncGenerator[bytes, None]:
        if first_chunk is not None:
            yield first_chunk
        async with aclosing(chunks):
            async for chunk in chunks:
                yield chunk

    return replay()


@router.post("")
async def chat_proxy(request: ChatRequest):
    """
    Proxy a chat conversation to the AI gateway, returning the upstream
    event stream unchanged.

    Stream format (upstream):
        data: {"choices": [{"delta": {"content": "..."}}]}
        data: [DONE]
    """
    try:
        body = await _prime(chat_service.stream_raw(request.to_messages()))
    except AIGatewayError as e:
        return _error_response(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Chat error: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return StreamingResponse(body, media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/stream")
async def chat_stream(request: ChatRequest):
    """
    Chat with the assistant, returning assembled text deltas.

    Stream format:
        data: {"type": "response", "content": "chunk"}
        data: {"done": true}
    """
    try:
        chunks = await _prime(chat_service.stream_raw(request.to_messages()))
    except AIGatewayError as e:
        return _error_response(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Chat error: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    async def generate_response():
        delta_count = 0
        try:
            async for delta in iter_deltas(chunks):
                delta_count += 1
                chunk: StreamChunk = {"type": "response", "content": delta}
                yield f"data: {json.dumps(chunk)}\n\n"

            yield f"data: {json.dumps({'done': True})}\n\n"
            logger.info(f"[Chat Router] Stream complete after {delta_count} deltas")

        except Exception as e:
            logger.error(f"[Chat Router] Stream failed after {delta_count} deltas: {e}")
            yield f"data: {json.dumps({'error': str(e)})}\n\n"

    return StreamingResponse(
        generate_response(), media_type="text/event-stream", headers=SSE_HEADERS
    )


@router.get("/health")
async def health_check() -> dict[str, object]:
    """
    Check if the AI gateway is reachable
    """
    try:
        return await ai_gateway_service.test_connection()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"AI service error: {str(e)}")


@router.post("/complete")
async def chat_complete(request: ChatRequest) -> dict[str, object]:
    """
    Chat with the assistant and return the full reply once assembled.
    """
    sink = TextBufferSink()
    try:
        reply = await chat_service.complete(request.to_messages(), sink)
        return {"reply": reply}
    except AIGatewayError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Chat failed: {str(e)}")
