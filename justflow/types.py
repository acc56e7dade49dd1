from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any
from collections.abc import Mapping


class FlowError(Exception):
    """Base class for errors raised by the flow engine itself."""

    pass


class FlowDefinitionError(FlowError):
    """Raised when a flow is defined or spawned incorrectly."""

    pass


class FlowProtocolError(FlowError):
    """Raised when a flow body yields something the driver cannot wait on."""

    pass


class FlowCancelled(Exception):
    """Injected into a suspended flow when its future is cancelled."""

    def __init__(self, reason: str = "FLOW_CANCELLED"):
        super().__init__(reason)
        self.reason = reason


class MiddlewareEventType(str, Enum):
    """Nature of a single interceptable step."""

    ACTION = "action"
    FLOW_SPAWN = "flow_spawn"
    FLOW_RESUME = "flow_resume"
    FLOW_RESUME_ERROR = "flow_resume_error"
    FLOW_RETURN = "flow_return"
    FLOW_THROW = "flow_throw"


class FlowState(Enum):
    """Lifecycle of one spawned flow."""

    SPAWNING = "spawning"
    RUNNING = "running"
    SUSPENDED = "suspended"
    RETURNING = "returning"
    THROWING = "throwing"
    SETTLED = "settled"
    # Closed after a protocol error; the future is never settled.
    ABANDONED = "abandoned"


_EMPTY_KWARGS: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True)
class InvocationContext:
    """Immutable snapshot identifying one step in the action/flow hierarchy.

    Identity and lineage:
    - ``id`` is shared by every step of one flow invocation (or one action)
    - ``parent_id`` / ``all_parent_ids`` / ``root_id`` locate it in the tree

    ``parent_event`` and ``parent_action_event`` are references to the
    enclosing contexts, not copies; they are left out of equality and repr
    to keep comparisons and log lines flat.
    """

    # Name of the originating action or flow function.
    name: str

    # Unique id allocated when the action or flow was started.
    id: int

    # Step nature.
    type: MiddlewareEventType

    # Values attached to this step (spawn arguments or the single step value).
    args: tuple[Any, ...] = ()

    # Keyword arguments (spawn and action steps only).
    kwargs: Mapping[str, Any] = field(
        default_factory=lambda: _EMPTY_KWARGS, compare=False
    )

    # Opaque owning hierarchy and its ambient data, copied from the parent.
    tree: Any = field(default=None, compare=False)
    scope: Any = field(default=None, compare=False)

    # Id of the context that was active when this one was started (0 at root).
    parent_id: int = 0

    # Ancestor ids, outermost first.
    all_parent_ids: tuple[int, ...] = ()

    # Id of the top-level action of this chain.
    root_id: int = 0

    parent_event: "InvocationContext | None" = field(
        default=None, compare=False, repr=False
    )
    parent_action_event: "InvocationContext | None" = field(
        default=None, compare=False, repr=False
    )

    @property
    def is_action(self) -> bool:
        return self.type is MiddlewareEventType.ACTION

    @property
    def value(self) -> Any:
        """The single value of a resume/return/throw step."""
        return self.args[0] if self.args else None
