"""Backend gateway implementing the query, procedure and identity ports."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError

from wmsync.domain.model import ActorKind, RequestStatus
from wmsync.domain.ports.errors import BackendError, BackendRejectedError, RecordNotFoundError
from wmsync.domain.ports.identity import ClientLink, RoleBinding

from .client import eq
from .schema import (
    ClientRow,
    DashboardStatsPayload,
    EventLogRow,
    FinancialDocumentRow,
    RequestRow,
    RoleBindingRow,
    ShipmentRow,
    SystemLogRow,
)
from .translator import (
    REQUEST_STATUS_WIRE,
    SHIPMENT_STATUS_WIRE,
    UnsupportedValueError,
    parse_carrier_role,
    parse_dashboard,
    parse_event_log,
    parse_financial_document,
    parse_request,
    parse_shipment,
    parse_system_log,
    serialize_attachment,
)

if TYPE_CHECKING:
    from wmsync.domain.model import (
        AuditLogEntry,
        DashboardSummary,
        EventLogEntry,
        FinancialDocument,
        RequestRecord,
        Shipment,
        ShipmentStatus,
    )
    from wmsync.domain.ports.identity import IdentityDirectory
    from wmsync.domain.ports.procedures import RemoteProcedures, TransitionPayload
    from wmsync.domain.ports.queries import (
        QueryScope,
        ReadModelQueries,
        RequestQueries,
        ShipmentQueries,
    )

    from .client import BackendClient

log = getLogger(__name__)

SHIPMENTS_TABLE = "notas_fiscais"
REQUESTS_TABLE = "solicitacoes_carregamento"
FINANCIAL_TABLE = "documentos_financeiros"
EVENT_LOG_TABLE = "event_log"
SYSTEM_LOG_TABLE = "system_logs"
ROLE_BINDINGS_TABLE = "user_transportadoras"
CLIENTS_TABLE = "clientes"

REQUEST_COLUMNS = f"*,{SHIPMENTS_TABLE}(*)"


def _validate[M: BaseModel](model: type[M], payload: object) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise BackendError(f"Malformed {model.__name__} payload: {exc}") from exc


def _scope_filters(scope: QueryScope) -> dict[str, str]:
    column = "cliente_id" if scope.kind is ActorKind.CLIENT else "transportadora_id"
    return {column: eq(scope.scope_id)}


class BackendGateway:
    def __init__(self, client: BackendClient) -> None:
        self._client = client

    # -- shipments -----------------------------------------------------------------

    async def list_shipments(
        self, *, scope: QueryScope, status: ShipmentStatus | None = None
    ) -> list[Shipment]:
        if scope.is_empty:
            return []
        filters = _scope_filters(scope)
        if status is not None:
            filters["status"] = eq(SHIPMENT_STATUS_WIRE[status])
        else:
            filters["status"] = f"in.({','.join(SHIPMENT_STATUS_WIRE.values())})"
        rows = await self._client.select(
            SHIPMENTS_TABLE, filters=filters, order="data_recebimento.desc"
        )
        shipments: list[Shipment] = []
        for row in rows:
            try:
                shipments.append(parse_shipment(_validate(ShipmentRow, row)))
            except UnsupportedValueError as exc:
                log.warning("Skipping shipment %s: %s", row.get("id"), exc)
        return shipments

    async def get_shipment(self, shipment_id: str) -> Shipment | None:
        row = await self._client.select_one(SHIPMENTS_TABLE, filters={"id": eq(shipment_id)})
        if row is None:
            return None
        try:
            return parse_shipment(_validate(ShipmentRow, row))
        except UnsupportedValueError as exc:
            raise BackendRejectedError(str(exc), code="unsupported_status") from exc

    # -- request records -----------------------------------------------------------

    async def list_requests(
        self, *, scope: QueryScope, status: RequestStatus | None = None
    ) -> list[RequestRecord]:
        if scope.is_empty:
            return []
        filters = _scope_filters(scope)
        if status is not None:
            filters["status"] = eq(REQUEST_STATUS_WIRE[status])
        rows = await self._client.select(
            REQUESTS_TABLE,
            columns=REQUEST_COLUMNS,
            filters=filters,
            order="requested_at.desc",
        )
        return [parse_request(_validate(RequestRow, row)) for row in rows]

    async def get_request(self, request_id: str) -> RequestRecord | None:
        row = await self._client.select_one(
            REQUESTS_TABLE, columns=REQUEST_COLUMNS, filters={"id": eq(request_id)}
        )
        return None if row is None else parse_request(_validate(RequestRow, row))

    async def find_pending_request(self, shipment_id: str) -> RequestRecord | None:
        row = await self._client.select_one(
            REQUESTS_TABLE,
            columns=REQUEST_COLUMNS,
            filters={
                "nf_id": eq(shipment_id),
                "status": eq(REQUEST_STATUS_WIRE[RequestStatus.PENDING]),
            },
        )
        return None if row is None else parse_request(_validate(RequestRow, row))

    # -- remote procedures ---------------------------------------------------------

    async def request_pickup(
        self,
        *,
        shipment_id: str,
        actor_id: str,
        payload: TransitionPayload,
    ) -> str | None:
        attachments = [serialize_attachment(item) for item in payload.attachments]
        result = await self._client.rpc(
            "nf_solicitar_agendamento",
            {
                "p_nf_id": shipment_id,
                "p_data_agendamento": (
                    payload.schedule_date.isoformat() if payload.schedule_date else None
                ),
                "p_observacoes": payload.notes or None,
                "p_anexos": json.dumps(attachments) if attachments else None,
            },
        )
        log.debug("Pickup requested for %s by %s", shipment_id, actor_id)
        if isinstance(result, str):
            return result
        if isinstance(result, dict) and isinstance(result.get("id"), str):
            return result["id"]
        return None

    async def approve_request(self, *, request_id: str, actor_id: str) -> RequestRecord:
        return await self._decide_request(request_id, actor_id, RequestStatus.APPROVED)

    async def refuse_request(self, *, request_id: str, actor_id: str) -> RequestRecord:
        return await self._decide_request(request_id, actor_id, RequestStatus.REFUSED)

    async def confirm_shipment(self, *, shipment_id: str, actor_id: str) -> None:
        await self._client.rpc("nf_confirmar", {"p_nf_id": shipment_id, "p_user_id": actor_id})

    async def refuse_shipment(self, *, shipment_id: str, actor_id: str) -> None:
        await self._client.rpc("nf_recusar", {"p_nf_id": shipment_id, "p_user_id": actor_id})

    async def _decide_request(
        self, request_id: str, actor_id: str, status: RequestStatus
    ) -> RequestRecord:
        rows = await self._client.update(
            REQUESTS_TABLE,
            filters={
                "id": eq(request_id),
                "status": eq(REQUEST_STATUS_WIRE[RequestStatus.PENDING]),
            },
            values={
                "status": REQUEST_STATUS_WIRE[status],
                "approved_by": actor_id,
                "approved_at": datetime.now(UTC).isoformat(),
            },
        )
        if not rows:
            raise RecordNotFoundError(
                f"Request {request_id} is not pending anymore", code="not_pending"
            )
        return parse_request(_validate(RequestRow, rows[0]))

    # -- identity directory --------------------------------------------------------

    async def find_role_binding(self, user_id: str) -> RoleBinding | None:
        row = await self._client.select_one(
            ROLE_BINDINGS_TABLE,
            columns="transportadora_id,role",
            filters={"user_id": eq(user_id), "is_active": eq("true")},
        )
        if row is None:
            return None
        binding = _validate(RoleBindingRow, row)
        try:
            role = parse_carrier_role(binding.role)
        except UnsupportedValueError as exc:
            log.warning("Ignoring role binding for %s: %s", user_id, exc)
            return None
        return RoleBinding(carrier_id=binding.transportadora_id, role=role)

    async def find_active_client(self, email: str) -> ClientLink | None:
        row = await self._client.select_one(
            CLIENTS_TABLE,
            columns="id,razao_social,cnpj,transportadora_id",
            filters={"email": eq(email), "status": eq("ativo")},
        )
        if row is None:
            return None
        client = _validate(ClientRow, row)
        return ClientLink(
            client_id=client.id,
            name=client.razao_social,
            tax_id=client.cnpj,
            carrier_id=client.transportadora_id,
        )

    # -- read models ---------------------------------------------------------------

    async def dashboard_summary(self, *, scope: QueryScope) -> DashboardSummary:
        payload = await self._client.rpc("get_dashboard_stats")
        if isinstance(payload, list):
            payload = payload[0] if payload else {}
        if payload is None:
            log.warning("Dashboard stats for %s came back empty", scope.scope_id)
            payload = {}
        return parse_dashboard(_validate(DashboardStatsPayload, payload))

    async def list_financial_documents(self, *, scope: QueryScope) -> list[FinancialDocument]:
        if scope.is_empty:
            return []
        rows = await self._client.select(
            FINANCIAL_TABLE, filters=_scope_filters(scope), order="data_vencimento.asc"
        )
        return [parse_financial_document(_validate(FinancialDocumentRow, row)) for row in rows]

    async def list_event_log(self, *, limit: int = 100) -> list[EventLogEntry]:
        rows = await self._client.select(EVENT_LOG_TABLE, order="created_at.desc", limit=limit)
        return [parse_event_log(_validate(EventLogRow, row)) for row in rows]

    async def list_audit_log(self, *, limit: int = 100) -> list[AuditLogEntry]:
        rows = await self._client.select(SYSTEM_LOG_TABLE, order="created_at.desc", limit=limit)
        return [parse_system_log(_validate(SystemLogRow, row)) for row in rows]


if TYPE_CHECKING:

    def _port_checks(gateway: BackendGateway) -> None:
        _shipments: ShipmentQueries = gateway
        _requests: RequestQueries = gateway
        _procedures: RemoteProcedures = gateway
        _identity: IdentityDirectory = gateway
        _read_models: ReadModelQueries = gateway
