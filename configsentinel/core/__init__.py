"""Core primitives shared by the engine and the probe providers."""

from configsentinel.core.errors import (
    ConfigSentinelError,
    DuplicateProviderError,
    OperationCancelledError,
    WorkflowCancelledError,
    AuditCancelledError,
)
from configsentinel.core.cancellation import CancellationToken, CancelReason

__all__ = [
    "ConfigSentinelError",
    "DuplicateProviderError",
    "OperationCancelledError",
    "WorkflowCancelledError",
    "AuditCancelledError",
    "CancellationToken",
    "CancelReason",
]
