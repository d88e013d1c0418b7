"""Conditional routing functions for the search pipeline graph."""

from typing import Callable

from workflow.state import SearchPipelineState


def route_after_cache(state: SearchPipelineState) -> str:
    """Route after the cache lookup: hit -> finish, miss -> acquire the lock."""
    if state.get("error"):
        return "handle_error"
    if state.get("result") is not None:
        return "finish"
    return "acquire_lock"


def route_after_lock(state: SearchPipelineState) -> str:
    """Route after locking: another request may have filled the cache meanwhile."""
    if state.get("error"):
        return "handle_error"
    if state.get("result") is not None:
        return "finish"
    return "authorize"


def continue_unless_error(next_node: str) -> Callable[[SearchPipelineState], str]:
    """Routing function for linear steps: next_node, or handle_error on failure."""

    def route(state: SearchPipelineState) -> str:
        if state.get("error"):
            return "handle_error"
        return next_node

    route.__name__ = f"route_to_{next_node}"
    return route
