"""Search pipeline progress callbacks for monitoring and terminal reporting."""

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class PipelineCallback(Protocol):
    """Protocol for pipeline progress callbacks.

    Implement this protocol to hook into the pipeline execution lifecycle.
    """

    def on_node_exit(self, node: str, state: dict) -> None:
        """Called after a node finishes executing with the current accumulated state."""
        ...

    def on_error(self, node: str, error: str) -> None:
        """Called when a node records an error."""
        ...

    def on_pipeline_complete(self, final_state: dict) -> None:
        """Called when the pipeline finishes, successfully or not."""
        ...


class LoggingCallback:
    """Lightweight callback that logs progress to the standard logger."""

    def on_node_exit(self, node: str, state: dict) -> None:
        logger.debug("<- node: %s", node)

    def on_error(self, node: str, error: str) -> None:
        logger.error("Pipeline error in '%s': %s", node, error)

    def on_pipeline_complete(self, final_state: dict) -> None:
        state = final_state.get("state")
        logger.info("Pipeline complete: %s", state.value if state else "unknown")


class RichProgressCallback:
    """Progress callback that renders a Rich spinner in the terminal."""

    # When a node exits, show the label of the step that is *entering* next.
    # (astream fires events after each node completes.)
    _ENTERING_LABEL: dict[str, str] = {
        "resolve_facets": "Deriving search key",
        "derive_key": "Checking cache",
        "check_cache": "Acquiring generation lock",
        "acquire_lock": "Authorizing credits",
        "authorize": "Selecting authors",
        "resolve_authors": "Generating books",
        "generate_books": "Saving results",
        "persist": "Settling credits",
        "settle": "Finishing",
    }

    def __init__(self, console=None):
        """
        Args:
            console: Rich Console instance. Creates one if not provided.
        """
        self._console = console
        self._progress = None
        self._task_id = None

    def start(self):
        """Start the progress display. Call before running the pipeline."""
        from rich.console import Console
        from rich.progress import Progress, SpinnerColumn, TextColumn

        console = self._console or Console()
        self._progress = Progress(
            SpinnerColumn("dots"),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        )
        self._progress.start()
        self._task_id = self._progress.add_task("Resolving genre and language", total=None)

    def stop(self):
        """Stop the progress display."""
        if self._progress:
            self._progress.stop()
            self._progress = None

    def on_node_exit(self, node: str, state: dict) -> None:
        if not self._progress:
            return
        label = self._ENTERING_LABEL.get(node)
        if node == "check_cache" and state.get("result") is not None:
            label = "Cache hit"
        if label:
            self._progress.update(self._task_id, description=f"[dim]{label}...[/]")

    def on_error(self, node: str, error: str) -> None:
        if not self._progress:
            return
        self._progress.update(self._task_id, description=f"[red]Error ({node}): {error[:80]}[/]")

    def on_pipeline_complete(self, final_state: dict) -> None:
        if not self._progress:
            return
        self._progress.update(self._task_id, description="[bold green]Done[/]")
