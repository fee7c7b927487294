"""Domain port definitions for adapters."""

from __future__ import annotations

from .audit import AuditEntry, AuditLevel, AuditSink, new_correlation_id
from .change_feed import (
    ChangeFeed,
    ChangeListener,
    ChangeNotification,
    ConnectivityStatus,
    StatusListener,
    Subscription,
)
from .errors import (
    BackendAuthError,
    BackendError,
    BackendRejectedError,
    BackendUnavailableError,
    RecordNotFoundError,
)
from .identity import ClientLink, IdentityDirectory, RoleBinding
from .procedures import RemoteProcedures, TransitionPayload
from .queries import QueryScope, ReadModelQueries, RequestQueries, ShipmentQueries
from .storage import AttachmentStorage

__all__ = [
    "AttachmentStorage",
    "AuditEntry",
    "AuditLevel",
    "AuditSink",
    "BackendAuthError",
    "BackendError",
    "BackendRejectedError",
    "BackendUnavailableError",
    "ChangeFeed",
    "ChangeListener",
    "ChangeNotification",
    "ClientLink",
    "ConnectivityStatus",
    "IdentityDirectory",
    "QueryScope",
    "ReadModelQueries",
    "RecordNotFoundError",
    "RemoteProcedures",
    "RequestQueries",
    "RoleBinding",
    "ShipmentQueries",
    "StatusListener",
    "Subscription",
    "TransitionPayload",
    "new_correlation_id",
]
