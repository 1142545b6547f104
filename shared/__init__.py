"""
Shared configuration and schemas.

Usage:
    from shared import ContextConfig, ConversationMessage

    config = ContextConfig(max_chunks=5)
    message = ConversationMessage.user("Continue the chapter.")
"""

from .config import (
    AssemblyConfig,
    BudgetRatios,
    ConfigurationError,
    ContextConfig,
    Settings,
    configure_logging,
    get_settings,
)
from .schemas import (
    ChatRequest,
    ChatResponse,
    ConversationMessage,
    FunctionCall,
    FunctionDefinition,
    ProviderCapabilities,
    Role,
    StreamChunk,
    TokenUsage,
    ToolCall,
    ToolDefinition,
)

__all__ = [
    "AssemblyConfig",
    "BudgetRatios",
    "ConfigurationError",
    "ContextConfig",
    "Settings",
    "configure_logging",
    "get_settings",
    "ChatRequest",
    "ChatResponse",
    "ConversationMessage",
    "FunctionCall",
    "FunctionDefinition",
    "ProviderCapabilities",
    "Role",
    "StreamChunk",
    "TokenUsage",
    "ToolCall",
    "ToolDefinition",
]
