"""Client for the Heroku inference chat-completion and agent APIs."""

from heroku_inference.config import ClientConfig, load_config, resolve_config
from heroku_inference.errors import (
    ClientRejectedError,
    ConfigError,
    ErrorClassifier,
    ErrorKind,
    ExhaustedRetriesError,
    InferenceError,
    NetworkError,
    ServerUnavailableError,
    StreamProtocolError,
)
from heroku_inference.llm import InferenceClient
from heroku_inference.types import (
    AggregatedResult,
    ChatRequest,
    SSEFrame,
    StreamChunk,
    ToolCall,
    ToolCallFragment,
    ToolResult,
)

__version__ = "0.1.0"

__all__ = [
    "AggregatedResult",
    "ChatRequest",
    "ClientConfig",
    "ClientRejectedError",
    "ConfigError",
    "ErrorClassifier",
    "ErrorKind",
    "ExhaustedRetriesError",
    "InferenceClient",
    "InferenceError",
    "NetworkError",
    "SSEFrame",
    "ServerUnavailableError",
    "StreamChunk",
    "StreamProtocolError",
    "ToolCall",
    "ToolCallFragment",
    "ToolResult",
    "load_config",
    "resolve_config",
]
