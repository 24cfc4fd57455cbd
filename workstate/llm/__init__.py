"""Model provider adapters."""

from .catalog import MODEL_CATALOG, ModelSpec, lookup_model
from .client import ModelClient, ModelResponse
from .errors import InvalidResponseError, ProviderError, TransientProviderError

__all__ = [
    "InvalidResponseError",
    "MODEL_CATALOG",
    "ModelClient",
    "ModelResponse",
    "ModelSpec",
    "ProviderError",
    "TransientProviderError",
    "lookup_model",
]
