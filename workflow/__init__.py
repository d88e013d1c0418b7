"""Workflow package: LangGraph search pipeline, state, conditions, and utilities."""

from workflow.graph import SearchPipeline
from workflow.state import SearchPipelineState
from workflow.conditions import (
    continue_unless_error,
    route_after_cache,
    route_after_lock,
)
from workflow.author_pool import AuthorPoolSelector, probabilistic_reuse
from workflow.callbacks import PipelineCallback, LoggingCallback, RichProgressCallback

__all__ = [
    "SearchPipeline",
    "SearchPipelineState",
    "continue_unless_error",
    "route_after_cache",
    "route_after_lock",
    "AuthorPoolSelector",
    "probabilistic_reuse",
    "PipelineCallback",
    "LoggingCallback",
    "RichProgressCallback",
]
