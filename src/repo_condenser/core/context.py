"""Run context propagation for condensation runs.

Every pipeline invocation runs inside a run context so that log records
emitted anywhere below it (chunker, summarizer, provider adapter) carry
the same correlation ID and elapsed time.

Usage:
    from repo_condenser.core.context import run_context, get_correlation_id

    with run_context(label="acme/widgets") as ctx:
        print(ctx.correlation_id)  # e.g., "run_a1b2c3d4e5f6"
"""

from __future__ import annotations

import secrets
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, Optional

__all__ = [
    "correlation_id_var",
    "run_label_var",
    "start_time_var",
    "RunContext",
    "generate_correlation_id",
    "run_context",
    "get_correlation_id",
    "get_run_label",
    "get_start_time",
    "get_current_context",
]

# -----------------------------------------------------------------------------
# Context Variables
# -----------------------------------------------------------------------------

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
"""Correlation ID of the condensation run in progress."""

run_label_var: ContextVar[str] = ContextVar("run_label", default="")
"""Human-readable label of the run (usually the repository name)."""

start_time_var: ContextVar[float] = ContextVar("start_time", default=0.0)
"""Run start time as Unix timestamp."""


def generate_correlation_id(prefix: str = "run") -> str:
    """Generate a unique correlation ID.

    Format: {prefix}_{12_hex_chars}
    """
    return f"{prefix}_{secrets.token_hex(6)}"


@dataclass
class RunContext:
    """Snapshot of the current run context.

    Attributes:
        correlation_id: Unique run identifier
        label: Run label (repository or bundle name)
        start_time: Run start timestamp
    """

    correlation_id: str = ""
    label: str = ""
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time <= 0:
            return 0.0
        return time.time() - self.start_time

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed_seconds * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "label": self.label,
            "start_time": self.start_time,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }


@contextmanager
def run_context(
    *,
    correlation_id: Optional[str] = None,
    label: str = "",
) -> Generator[RunContext, None, None]:
    """Set up run context variables for the duration of the with block.

    Nested runs reuse the enclosing correlation ID unless one is given
    explicitly, so a caller can wrap several pipeline invocations in a
    single traced operation.

    Args:
        correlation_id: Run ID (inherited or auto-generated if None)
        label: Run label for log records

    Yields:
        RunContext snapshot
    """
    corr_id = correlation_id or correlation_id_var.get() or generate_correlation_id()
    start = start_time_var.get() or time.time()

    token_corr = correlation_id_var.set(corr_id)
    token_label = run_label_var.set(label or run_label_var.get())
    token_start = start_time_var.set(start)
    try:
        yield RunContext(correlation_id=corr_id, label=run_label_var.get(), start_time=start)
    finally:
        correlation_id_var.reset(token_corr)
        run_label_var.reset(token_label)
        start_time_var.reset(token_start)


# -----------------------------------------------------------------------------
# Accessors
# -----------------------------------------------------------------------------


def get_correlation_id() -> str:
    """Get the current correlation ID ("" outside a run)."""
    return correlation_id_var.get()


def get_run_label() -> str:
    return run_label_var.get()


def get_start_time() -> float:
    return start_time_var.get()


def get_current_context() -> RunContext:
    """Get a snapshot of the current run context."""
    return RunContext(
        correlation_id=correlation_id_var.get(),
        label=run_label_var.get(),
        start_time=start_time_var.get(),
    )
