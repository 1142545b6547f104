"""
Pydantic schemas for chat messages, provider capabilities and requests.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FunctionCall(BaseModel):
    """Function invocation requested by the model."""

    name: str
    arguments: str = Field(default="", description="JSON-encoded arguments")


class ToolCall(BaseModel):
    """A tool invocation made by the assistant."""

    id: str
    type: str = "function"
    function: FunctionCall


class FunctionDefinition(BaseModel):
    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)
    strict: bool = False


class ToolDefinition(BaseModel):
    """A tool the model may call."""

    type: str = "function"
    function: FunctionDefinition


class ConversationMessage(BaseModel):
    """A single message in a conversation."""

    role: Role
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def system(cls, content: str) -> "ConversationMessage":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "ConversationMessage":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "ConversationMessage":
        return cls(role=Role.ASSISTANT, content=content)

    @classmethod
    def tool(cls, tool_call_id: str, name: str, content: str) -> "ConversationMessage":
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id, name=name)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class ProviderCapabilities(BaseModel):
    """What a model backend supports. The only thing assembly sizes against."""

    max_context_tokens: int = Field(default=0, description="Context window size")
    max_output_tokens: int = Field(default=0, description="Generation cap")
    tokenizer_type: str = Field(
        default="cl100k_base",
        description="cl100k_base, o200k_base, gemini, claude, or empty if unknown",
    )
    supports_streaming: bool = False
    supports_tools: bool = False
    supports_vision: bool = False
    models: List[str] = Field(default_factory=list)

    @field_validator("max_context_tokens", "max_output_tokens")
    @classmethod
    def _clamp_negative(cls, value: int) -> int:
        return max(0, value)


class ChatRequest(BaseModel):
    """Request handed to a provider's chat or stream call."""

    messages: List[ConversationMessage]
    model: str = ""
    max_tokens: int = 0
    temperature: float = 0.7
    tools: List[ToolDefinition] = Field(default_factory=list)
    tool_choice: Optional[str] = None
    stop: List[str] = Field(default_factory=list)


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cached_tokens: int = 0


class ChatResponse(BaseModel):
    """Complete response from a chat call."""

    message: ConversationMessage
    usage: TokenUsage = Field(default_factory=TokenUsage)
    finish_reason: str = "stop"
    model: str = ""


class StreamChunk(BaseModel):
    """One increment of a streamed response."""

    delta: str = ""
    tool_call: Optional[ToolCall] = None
    done: bool = False
    finish_reason: Optional[str] = None
    usage: Optional[TokenUsage] = None
    error: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.done or self.error is not None
