"""
AI gateway configuration models.

The full model carries the API key and never leaves the backend; the
masked model is what the configuration endpoints return.
"""

from pydantic import BaseModel


class _LLMConfigurationFields(BaseModel):
    id: int
    name: str
    description: str | None = None
    base_url: str
    model_name: str
    is_active: bool
    created_at: str
    updated_at: str


class LLMConfiguration(_LLMConfigurationFields):
    """A stored configuration including its secret"""

    api_key: str


class LLMConfigurationMasked(_LLMConfigurationFields):
    """A stored configuration safe to show in the UI"""

    api_key_preview: str
