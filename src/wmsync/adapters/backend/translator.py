"""Translate backend rows into domain objects and domain values into wire values."""

from __future__ import annotations

from typing import TYPE_CHECKING

from wmsync.domain.model import (
    AttachmentDescriptor,
    AuditLogEntry,
    CarrierRole,
    DashboardSummary,
    EventLogEntry,
    FinancialDocument,
    RequestRecord,
    RequestStatus,
    SeparationStatus,
    Shipment,
    ShipmentStatus,
)

if TYPE_CHECKING:
    from .schema import (
        AttachmentPayload,
        DashboardStatsPayload,
        EventLogRow,
        FinancialDocumentRow,
        RequestRow,
        ShipmentRow,
        SystemLogRow,
    )

SHIPMENT_STATUS_WIRE: dict[ShipmentStatus, str] = {
    ShipmentStatus.STORED: "ARMAZENADA",
    ShipmentStatus.REQUESTED: "SOLICITADA",
    ShipmentStatus.CONFIRMED: "CONFIRMADA",
}
REQUEST_STATUS_WIRE: dict[RequestStatus, str] = {
    RequestStatus.PENDING: "PENDENTE",
    RequestStatus.APPROVED: "APROVADA",
    RequestStatus.REFUSED: "RECUSADA",
}
SEPARATION_STATUS_WIRE: dict[SeparationStatus, str] = {
    SeparationStatus.PENDING: "pendente",
    SeparationStatus.IN_PROGRESS: "em_separacao",
    SeparationStatus.COMPLETED: "separacao_concluida",
    SeparationStatus.COMPLETED_WITH_ISSUES: "separacao_com_pendencia",
}
CARRIER_ROLE_WIRE: dict[CarrierRole, str] = {
    CarrierRole.OPERATOR: "operador",
    CarrierRole.CARRIER_ADMIN: "admin_transportadora",
    CarrierRole.SUPER_ADMIN: "super_admin",
}

_SHIPMENT_STATUS = {wire: status for status, wire in SHIPMENT_STATUS_WIRE.items()}
_REQUEST_STATUS = {wire: status for status, wire in REQUEST_STATUS_WIRE.items()}
_SEPARATION_STATUS = {wire: status for status, wire in SEPARATION_STATUS_WIRE.items()}
_CARRIER_ROLE = {wire: role for role, wire in CARRIER_ROLE_WIRE.items()}


class UnsupportedValueError(ValueError):
    """A row carries a value outside the pickup workflow (e.g. a shipment in transit)."""


def parse_shipment_status(value: str) -> ShipmentStatus:
    try:
        return _SHIPMENT_STATUS[value.upper()]
    except KeyError:
        raise UnsupportedValueError(f"Shipment status {value!r} is outside the workflow") from None


def parse_request_status(value: str) -> RequestStatus:
    try:
        return _REQUEST_STATUS[value.upper()]
    except KeyError:
        raise UnsupportedValueError(f"Unknown request status {value!r}") from None


def parse_separation_status(value: str | None) -> SeparationStatus:
    if value is None:
        return SeparationStatus.PENDING
    try:
        return _SEPARATION_STATUS[value]
    except KeyError:
        raise UnsupportedValueError(f"Unknown separation status {value!r}") from None


def parse_carrier_role(value: str) -> CarrierRole:
    try:
        return _CARRIER_ROLE[value]
    except KeyError:
        raise UnsupportedValueError(f"Unknown carrier role {value!r}") from None


def parse_shipment(row: ShipmentRow) -> Shipment:
    return Shipment(
        id=row.id,
        invoice_number=row.numero_nf,
        order_number=row.numero_pedido,
        client_id=row.cliente_id,
        carrier_id=row.transportadora_id,
        status=parse_shipment_status(row.status),
        separation_status=parse_separation_status(row.status_separacao),
        purchase_order=row.ordem_compra,
        product=row.produto,
        supplier=row.fornecedor,
        weight=row.peso,
        volume=row.volume,
        quantity=row.quantidade,
        location=row.localizacao,
        received_at=row.data_recebimento,
        requested_at=row.requested_at,
        requested_by=row.requested_by,
        approved_at=row.approved_at,
        approved_by=row.approved_by,
    )


def parse_attachment(payload: AttachmentPayload) -> AttachmentDescriptor:
    return AttachmentDescriptor(
        name=payload.name,
        path=payload.path,
        size=payload.size,
        content_type=payload.tipo,
        uploaded_at=payload.uploaded_at,
    )


def serialize_attachment(attachment: AttachmentDescriptor) -> dict[str, object]:
    return {
        "name": attachment.name,
        "path": attachment.path,
        "size": attachment.size,
        "tipo": attachment.content_type,
        "uploaded_at": attachment.uploaded_at.isoformat() if attachment.uploaded_at else None,
    }


def parse_request(row: RequestRow) -> RequestRecord:
    """Embedded shipments outside the workflow are dropped, leaving the record to hydration."""

    shipment: Shipment | None = None
    if row.notas_fiscais is not None:
        try:
            shipment = parse_shipment(row.notas_fiscais)
        except UnsupportedValueError:
            shipment = None
    return RequestRecord(
        id=row.id,
        shipment_id=row.nf_id,
        carrier_id=row.transportadora_id,
        client_id=row.cliente_id,
        status=parse_request_status(row.status),
        schedule_date=row.data_agendamento,
        notes=row.observacoes,
        attachments=tuple(parse_attachment(item) for item in row.anexos),
        requested_by=row.requested_by,
        requested_at=row.requested_at,
        approved_by=row.approved_by,
        approved_at=row.approved_at,
        shipment=shipment,
    )


def parse_dashboard(payload: DashboardStatsPayload) -> DashboardSummary:
    return DashboardSummary(
        pending_requests=payload.solicitacoes_pendentes,
        stored_shipments=payload.nfs_armazenadas,
        confirmed_shipments=payload.nfs_confirmadas,
        documents_due_soon=payload.docs_vencendo,
        documents_overdue=payload.docs_vencidos,
        amount_pending=payload.valor_pendente,
        amount_overdue=payload.valor_vencido,
    )


def parse_financial_document(row: FinancialDocumentRow) -> FinancialDocument:
    return FinancialDocument(
        id=row.id,
        carrier_id=row.transportadora_id,
        client_id=row.cliente_id,
        cte_number=row.numero_cte,
        due_date=row.data_vencimento,
        status=row.status,
        amount=row.valor,
        paid_at=row.data_pagamento,
        cte_file_path=row.arquivo_cte_path,
        invoice_file_path=row.arquivo_boleto_path,
        notes=row.observacoes,
    )


def parse_event_log(row: EventLogRow) -> EventLogEntry:
    return EventLogEntry(
        id=row.id,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        event_type=row.event_type,
        actor_id=row.actor_id,
        actor_role=row.actor_role,
        created_at=row.created_at,
        message=row.message,
        payload=dict(row.payload or {}),
    )


def parse_system_log(row: SystemLogRow) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        action=row.action,
        status=row.status,
        created_at=row.created_at,
        message=row.message,
        actor_user_id=row.actor_user_id,
        actor_role=row.actor_role,
        correlation_id=row.correlation_id,
        meta=dict(row.meta or {}),
    )
