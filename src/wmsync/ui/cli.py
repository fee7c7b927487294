from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import os
import sys
from datetime import UTC, datetime
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from wmsync.adapters.backend import sign_in_with_password
from wmsync.app import open_backend_session
from wmsync.config import ConfigurationError, configure_logging, get_backend_config
from wmsync.domain.errors import WorkflowError
from wmsync.domain.model import LegacyRequest, NormalizedRequest, RequestStatus, ShipmentStatus
from wmsync.domain.ports import TransitionPayload
from wmsync.domain.ports.errors import BackendError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from wmsync.app import BackendSession
    from wmsync.domain.model import RequestView, Session, Shipment
    from wmsync.domain.ports import ConnectivityStatus

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Warehouse pickup workflow client")
    parser.add_argument(
        "--email",
        type=str,
        default=os.getenv("WMSYNC_EMAIL"),
        help="Account e-mail (defaults to WMSYNC_EMAIL)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Only log warnings, but keep audit entries",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("whoami", help="Show the resolved actor")

    pending = subparsers.add_parser("pending", help="List pickup requests")
    pending.add_argument(
        "--status",
        choices=[*(status.value for status in RequestStatus), "all"],
        default=RequestStatus.PENDING.value,
        help="Request status to list (default: %(default)s)",
    )

    shipments = subparsers.add_parser("shipments", help="List shipments in scope")
    shipments.add_argument(
        "--status",
        choices=[status.value for status in ShipmentStatus],
        help="Only list shipments with this status",
    )

    request = subparsers.add_parser("request", help="Request pickup of a stored shipment")
    request.add_argument("shipment_id", type=str)
    request.add_argument("--schedule", type=str, help="ISO-8601 pickup date")
    request.add_argument("--notes", type=str, help="Free-text notes for the carrier")
    request.add_argument(
        "--attach",
        type=Path,
        action="append",
        default=[],
        help="File to attach (repeatable)",
    )

    for name, help_text in (
        ("approve", "Approve a pending pickup request"),
        ("refuse", "Refuse a pending pickup request"),
    ):
        decide = subparsers.add_parser(name, help=help_text)
        decide.add_argument(
            "target_id",
            type=str,
            help="Request id, legacy id (legacy:<shipment id>) or shipment id",
        )

    upload = subparsers.add_parser("upload", help="Upload an attachment for a shipment")
    upload.add_argument("shipment_id", type=str)
    upload.add_argument("file", type=Path)

    watch = subparsers.add_parser("watch", help="Follow changes and refresh pending requests")
    watch.add_argument(
        "--seconds",
        type=float,
        help="Stop after this many seconds (default: run until interrupted)",
    )

    return parser.parse_args(list(argv))


def _parse_iso_datetime(value: str) -> datetime:
    try:
        normalized = value.strip()
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        dt = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO timestamp: {value}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _format_view(view: RequestView) -> str:
    shipment = view.shipment
    requested = view.requested_at.isoformat() if view.requested_at else "-"
    match view:
        case NormalizedRequest():
            schedule = view.schedule_date.date().isoformat() if view.schedule_date else "-"
            return (
                f"{view.id}  NF {shipment.invoice_number}  {view.status}  requested {requested}"
                f"  pickup {schedule}  attachments {len(view.attachments)}"
            )
        case LegacyRequest():
            return f"{view.id}  NF {shipment.invoice_number}  {view.status}  requested {requested}"


def _format_shipment(shipment: Shipment) -> str:
    refused = "  (pickup refused)" if shipment.was_refused else ""
    return (
        f"{shipment.id}  NF {shipment.invoice_number}  order {shipment.order_number}  "
        f"{shipment.status}  separation {shipment.separation_status}{refused}"
    )


async def _sign_in(email: str | None) -> Session:
    if not email:
        raise ValueError("Missing --email (or WMSYNC_EMAIL)")
    password = os.getenv("WMSYNC_PASSWORD") or getpass.getpass(f"Password for {email}: ")
    return await sign_in_with_password(get_backend_config().auth, email=email, password=password)


async def _run(args: argparse.Namespace) -> None:
    session = await _sign_in(args.email)
    watch = args.command == "watch"

    def on_connectivity(status: ConnectivityStatus) -> None:
        log.info("Connectivity: %s", status)

    async with open_backend_session(
        session, watch=watch, on_connectivity=on_connectivity
    ) as backend:
        await _dispatch(args, backend)


async def _dispatch(args: argparse.Namespace, backend: BackendSession) -> None:
    core = backend.core
    actor = backend.actor
    if args.command == "whoami":
        scope = actor.scope_id or "no scope"
        suffix = " (fallback)" if actor.fallback else ""
        print(f"{actor.display_name} <{actor.email}>: {actor.role or actor.kind} [{scope}]{suffix}")
    elif args.command == "pending":
        status = None if args.status == "all" else RequestStatus(args.status)
        for view in await core.reads.unified_requests(status):
            print(_format_view(view))
    elif args.command == "shipments":
        status = ShipmentStatus(args.status) if args.status else None
        for shipment in await core.reads.shipments(status):
            print(_format_shipment(shipment))
    elif args.command == "request":
        owner = actor.scope_id or actor.principal_id
        attachments = [
            await backend.storage.upload_file(path, owner_scope=owner, shipment_id=args.shipment_id)
            for path in args.attach
        ]
        payload = TransitionPayload(
            schedule_date=_parse_iso_datetime(args.schedule) if args.schedule else None,
            notes=args.notes,
            attachments=tuple(attachments),
        )
        result = await core.request_transition(
            args.shipment_id, ShipmentStatus.REQUESTED, payload
        )
        print(f"Pickup requested for {result.shipment_id} ({len(attachments)} attachment(s))")
    elif args.command in {"approve", "refuse"}:
        target = ShipmentStatus.CONFIRMED if args.command == "approve" else ShipmentStatus.STORED
        result = await core.request_transition(args.target_id, target)
        kind = "legacy " if result.legacy else ""
        print(f"{result.kind} applied to {kind}request for {result.shipment_id}: {result.status}")
    elif args.command == "upload":
        owner = actor.scope_id or actor.principal_id
        descriptor = await backend.storage.upload_file(
            args.file, owner_scope=owner, shipment_id=args.shipment_id
        )
        print(f"Uploaded {descriptor.name} ({descriptor.size} bytes) to {descriptor.path}")
    elif args.command == "watch":
        await _watch(backend, seconds=args.seconds)
    else:
        raise ValueError(f"Unsupported command: {args.command}")


async def _watch(backend: BackendSession, *, seconds: float | None) -> None:
    core = backend.core
    loop = asyncio.get_running_loop()
    deadline = None if seconds is None else loop.time() + seconds
    seen = -1
    while deadline is None or loop.time() < deadline:
        if core.realtime.notifications != seen:
            seen = core.realtime.notifications
            views = await core.get_unified_pending_requests()
            log.info("%d pending request(s), %s", len(views), core.realtime.connectivity)
        await asyncio.sleep(1.0)


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)
    if parsed_args.verbose:
        level = logging.DEBUG
    elif parsed_args.quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    configure_logging(level=level)

    try:
        asyncio.run(_run(parsed_args))
    except (ConfigurationError, ValueError) as exc:
        log.error("%s", exc)  # noqa: TRY400
        sys.exit(2)
    except WorkflowError as exc:
        log.error("%s (%s)", exc.user_message, exc)  # noqa: TRY400
        sys.exit(1)
    except BackendError:
        log.exception("Backend failure")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
