"""
Model routing: abstract routes → provider/model, with cache, timeouts and
ordered fallback.
"""

from decisiongate.router.cache import InMemoryResponseCache, RedisResponseCache, ResponseCache
from decisiongate.router.providers import CompletionRequest, CompletionResponse, InferenceProvider
from decisiongate.router.router import (
    CallOptions,
    CallResult,
    JSONCallResult,
    ModelRouter,
    ResponseFormat,
    parse_json_content,
)
from decisiongate.router.routes import Route, RouteBinding

__all__ = [
    "CallOptions",
    "CallResult",
    "CompletionRequest",
    "CompletionResponse",
    "InMemoryResponseCache",
    "InferenceProvider",
    "JSONCallResult",
    "ModelRouter",
    "RedisResponseCache",
    "ResponseCache",
    "ResponseFormat",
    "Route",
    "RouteBinding",
    "parse_json_content",
]
