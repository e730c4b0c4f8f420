"""
Chat Service

Grounds the assistant in the publication database and streams answers
from the AI gateway, either as raw event-stream bytes or as assembled
text deltas.
"""

import logging
from contextlib import aclosing
from typing import AsyncGenerator

from app.models.publication_models import Publication
from app.models.stream_types import ChatMessage, DeltaSink
from app.services.ai_gateway_service import AIGatewayService, ai_gateway_service
from app.services.publications_service import PublicationsService, publications_service
from app.services.stream_assembler import assemble_stream

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a knowledgeable AI assistant specializing in NASA space biology research.

Your role:
- Answer questions about space biology, microgravity effects, radiation studies, and related topics
- When relevant publications are provided, ALWAYS reference them with their links as markdown: [Study Title](link)
- Format your responses with clear structure using bullet points, numbered lists, and headings
- Use **bold** for KEY findings, important concepts, and emphasis
- Use *italics* for scientific terms
- Keep responses informative but scannable (use white space)
- Always link to specific studies when mentioning research

CRITICAL: When referencing publications from the provided list, you MUST format them as markdown links: [Publication Title](URL)

Style: Engaging, visual, and easy to scan while maintaining scientific accuracy."""


def build_system_prompt(publications: list[Publication]) -> str:
    """
    Build the assistant system prompt, listing any relevant publications.

    Args:
        publications: Publications matched against the user's question

    Returns:
        System prompt text
    """
    if not publications:
        return SYSTEM_PROMPT

    lines = ["", "", "Relevant NASA space biology publications:"]
    for idx, pub in enumerate(publications, start=1):
        lines.append(f'{idx}. "{pub.title}" - {pub.link or pub.publication_url or ""}')
    return SYSTEM_PROMPT + "\n".join(lines) + "\n"


class ChatService:
    def __init__(
        self,
        gateway: AIGatewayService,
        publications_service: PublicationsService,
    ):
        self.gateway = gateway
        self.publications_service = publications_service

    def prepare_messages(self, messages: list[ChatMessage]) -> list[ChatMessage]:
        """
        Prepend the grounded system prompt to the conversation.

        Raises:
            ValueError: If the conversation is empty
        """
        if not messages:
            raise ValueError("messages must not be empty")

        user_message = messages[-1]["content"]
        publications = self.publications_service.search_titles(user_message, limit=5)
        logger.info(f"[Chat] Found {len(publications)} relevant publications for context")

        system: ChatMessage = {
            "role": "system",
            "content": build_system_prompt(publications),
        }
        return [system, *messages]

    async def stream_raw(self, messages: list[ChatMessage]) -> AsyncGenerator[bytes, None]:
        """Stream the upstream event-stream bytes unchanged."""
        upstream = self.gateway.stream_chat_bytes(self.prepare_messages(messages))
        async with aclosing(upstream):
            async for chunk in upstream:
                yield chunk

    async def complete(self, messages: list[ChatMessage], sink: DeltaSink) -> str:
        """
        Stream the assistant reply into ``sink`` and return the full text.

        If the transport fails part way, a sink with a ``reset`` method is
        rolled back before the error is re-raised.
        """
        try:
            reply = await assemble_stream(self.stream_raw(messages), sink)
        except Exception as e:
            logger.error(f"[Chat] Stream failed, discarding partial reply: {e}")
            reset = getattr(sink, "reset", None)
            if callable(reset):
                reset()
            raise

        logger.info(f"[Chat] Assembled reply of {len(reply)} chars")
        return reply


# Global instance
chat_service = ChatService(ai_gateway_service, publications_service)
