"""Public interface for the PostgREST-style backend adapter."""

from __future__ import annotations

from .audit import BackendAuditSink
from .auth import sign_in_with_password
from .change_feed import PollingChangeFeed
from .client import BackendClient
from .gateway import BackendGateway
from .storage import BackendAttachmentStorage, attachment_path

__all__ = [
    "BackendAttachmentStorage",
    "BackendAuditSink",
    "BackendClient",
    "BackendGateway",
    "PollingChangeFeed",
    "attachment_path",
    "sign_in_with_password",
]
