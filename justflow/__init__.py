from .actions import action, current_context, run_action, run_with_context
from .flow import FlowConfig, FlowSpawner, flow, to_generator, to_generator_function
from .middleware import Middleware, simple_logging_middleware
from .testing import FlowRecorder
from ._internal.flow.cancellation import FlowFuture
from .types import (
    FlowCancelled,
    FlowDefinitionError,
    FlowError,
    FlowProtocolError,
    FlowState,
    InvocationContext,
    MiddlewareEventType,
)

__all__ = [
    "flow",
    "FlowSpawner",
    "FlowConfig",
    "FlowFuture",
    "to_generator",
    "to_generator_function",
    "action",
    "run_action",
    "run_with_context",
    "current_context",
    "Middleware",
    "simple_logging_middleware",
    "FlowRecorder",
    "InvocationContext",
    "MiddlewareEventType",
    "FlowState",
    "FlowError",
    "FlowDefinitionError",
    "FlowProtocolError",
    "FlowCancelled",
]
