"""Pydantic models describing the backend's table rows and RPC payloads."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class BackendBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PostgrestError(BackendBaseModel):
    message: str = "backend error"
    code: str | None = None
    details: str | None = None
    hint: str | None = None


class ShipmentRow(BackendBaseModel):
    id: str
    numero_nf: str
    numero_pedido: str
    cliente_id: str
    transportadora_id: str
    status: str
    status_separacao: str | None = None
    ordem_compra: str | None = None
    produto: str | None = None
    fornecedor: str | None = None
    peso: float = 0.0
    volume: float = 0.0
    quantidade: int = 0
    localizacao: str | None = None
    data_recebimento: datetime | None = None
    requested_at: datetime | None = None
    requested_by: str | None = None
    approved_at: datetime | None = None
    approved_by: str | None = None

    _normalize_optional = field_validator(
        "status_separacao", "ordem_compra", "localizacao", "requested_by", "approved_by",
        mode="before",
    )(_blank_to_none)


class AttachmentPayload(BackendBaseModel):
    name: str
    path: str
    size: int = 0
    tipo: str | None = None
    uploaded_at: datetime | None = None


class RequestRow(BackendBaseModel):
    id: str
    nf_id: str
    cliente_id: str
    transportadora_id: str
    status: str
    data_agendamento: datetime | None = None
    observacoes: str | None = None
    anexos: list[AttachmentPayload] = Field(default_factory=list[AttachmentPayload])
    requested_by: str | None = None
    requested_at: datetime | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    notas_fiscais: ShipmentRow | None = None

    _normalize_notes = field_validator("observacoes", mode="before")(_blank_to_none)

    @field_validator("anexos", mode="before")
    @classmethod
    def _null_attachments(cls, value: object) -> object:
        return [] if value is None else value


class RoleBindingRow(BackendBaseModel):
    transportadora_id: str
    role: str


class ClientRow(BackendBaseModel):
    id: str
    razao_social: str
    cnpj: str | None = None
    transportadora_id: str | None = None


class DashboardStatsPayload(BackendBaseModel):
    solicitacoes_pendentes: int = 0
    nfs_armazenadas: int = 0
    nfs_confirmadas: int = 0
    docs_vencendo: int = 0
    docs_vencidos: int = 0
    valor_pendente: float | None = None
    valor_vencido: float | None = None


class FinancialDocumentRow(BackendBaseModel):
    id: str
    transportadora_id: str
    cliente_id: str
    numero_cte: str
    data_vencimento: date
    status: str
    valor: float | None = None
    data_pagamento: date | None = None
    arquivo_cte_path: str | None = None
    arquivo_boleto_path: str | None = None
    observacoes: str | None = None


class EventLogRow(BackendBaseModel):
    id: str
    entity_type: str
    entity_id: str | None = None
    event_type: str
    actor_id: str | None = None
    actor_role: str | None = None
    created_at: datetime
    message: str | None = None
    payload: dict[str, object] | None = None


class SystemLogRow(BackendBaseModel):
    id: str
    entity_type: str
    entity_id: str | None = None
    action: str
    status: str
    created_at: datetime
    message: str | None = None
    actor_user_id: str | None = None
    actor_role: str | None = None
    correlation_id: str | None = None
    meta: dict[str, object] | None = None


class ChangeCursorRow(BackendBaseModel):
    id: str | None = None
    changed_at: datetime
