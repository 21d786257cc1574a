"""Foundation: errors, configuration, and the tool registry."""

from .errors import (
    ErrorNormalizer,
    ErrorType,
    NormalizedError,
    NormalizedException,
    normalize,
    tool_error_response,
)
from .config import FalmcpSettings, clear_settings_cache, get_settings
from .registry import ToolRegistry

__all__ = [
    "ErrorType", "NormalizedError", "NormalizedException", "ErrorNormalizer", "normalize", "tool_error_response",
    "FalmcpSettings", "get_settings", "clear_settings_cache",
    "ToolRegistry",
]
