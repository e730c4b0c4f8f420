"""
Services Package

Database services for publications and AI gateway configuration, the
gateway client itself, and the chat service built on the incremental
stream assembler.
"""

from .base_database_service import BaseDatabaseService
from .llm_config_service import LLMConfigService
from .publications_service import PublicationsService, publications_service
from .stream_assembler import StreamingResponseAssembler, TextBufferSink

__all__ = [
    "BaseDatabaseService",
    "LLMConfigService",
    "PublicationsService",
    "publications_service",
    "StreamingResponseAssembler",
    "TextBufferSink",
]
