"""Prompt construction for the model classifier."""

from .builder import PromptBuilder, PromptMessage, PromptRequest
from .schema import analysis_schema, response_format

__all__ = ["PromptBuilder", "PromptMessage", "PromptRequest", "analysis_schema", "response_format"]
