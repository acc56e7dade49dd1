from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any
from collections.abc import Mapping

from justflow.actions import nearest_action_ancestor
from justflow.types import FlowDefinitionError, InvocationContext, MiddlewareEventType
from justflow._internal.shared.utils import next_action_id


@dataclass(frozen=True, slots=True)
class ContextBase:
    """Fixed part of every step context of one flow invocation."""

    name: str
    id: int
    tree: Any
    scope: Any
    parent_id: int
    all_parent_ids: tuple[int, ...]
    root_id: int
    parent_event: InvocationContext = field(repr=False)
    parent_action_event: InvocationContext = field(repr=False)

    def step(
        self,
        type: MiddlewareEventType,
        args: tuple[Any, ...],
        kwargs: Mapping[str, Any] | None = None,
    ) -> InvocationContext:
        """Build the context of one discrete step."""
        return InvocationContext(
            name=self.name,
            id=self.id,
            type=type,
            args=args,
            kwargs=MappingProxyType(dict(kwargs)) if kwargs else MappingProxyType({}),
            tree=self.tree,
            scope=self.scope,
            parent_id=self.parent_id,
            all_parent_ids=self.all_parent_ids,
            root_id=self.root_id,
            parent_event=self.parent_event,
            parent_action_event=self.parent_action_event,
        )


def build_context_base(
    name: str, parent_context: InvocationContext | None
) -> ContextBase:
    """Derive the context base of a new flow from the context it is spawned in."""
    if parent_context is None:
        raise FlowDefinitionError(
            f"Flow '{name}' must always have a parent context. "
            f"Spawn it from inside a running action (see justflow.run_action)."
        )
    parent_action_context = nearest_action_ancestor(parent_context)
    if parent_action_context is None:
        raise FlowDefinitionError(
            f"Flow '{name}' must always have a parent action context."
        )

    return ContextBase(
        name=name,
        id=next_action_id(),
        tree=parent_context.tree,
        scope=parent_context.scope,
        parent_id=parent_context.id,
        all_parent_ids=parent_context.all_parent_ids + (parent_context.id,),
        root_id=parent_context.root_id,
        parent_event=parent_context,
        parent_action_event=parent_action_context,
    )
