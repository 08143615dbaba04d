"""
Wire Mapper - versioned translation between Order snapshots and backend
documents.

The backend speaks Spanish field names and a dynamic document shape; this
module is the only place that knows that shape. Every numeric value is
written as a decimal string and read back through ``Decimal(str)``, so no
amount ever passes through a float.

Versioning:
    Each document carries ``schema_version``. Readers are registered per
    version in ``_READERS``; an unknown or missing version raises
    UnsupportedPayloadVersionError instead of guessing. A known version whose
    fields do not parse raises MalformedPayloadError; both are
    ReconciliationErrors, so schema drift never escapes as a raw KeyError.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pos_engines.tender import TenderEntry, TenderSummary
from pos_kernel.domain.catalog import ClientRef, LocationRef, WarehouseRef
from pos_kernel.domain.order import Order, OrderLine, OrderStatus, OrderTotals
from pos_kernel.domain.values import Currency, Money
from pos_kernel.exceptions import MalformedPayloadError, UnsupportedPayloadVersionError
from pos_kernel.logging_config import get_logger

logger = get_logger("services.wire")

SCHEMA_VERSION = 1

_STATUS_TO_WIRE = {
    OrderStatus.PENDING: "pendiente",
    OrderStatus.COMPLETED: "completado",
}
_STATUS_FROM_WIRE = {value: key for key, value in _STATUS_TO_WIRE.items()}


def _dec(value: Decimal) -> str:
    return str(value)


def _amount(money: Money) -> str:
    return str(money.amount)


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------


def line_to_payload(line: OrderLine) -> dict[str, Any]:
    return {
        "consecutivo": line.sequence,
        "id_producto": line.product_id,
        "nombre": line.name,
        "cantidad": _dec(line.quantity),
        "costo": _amount(line.unit_cost),
        "descuento_porcentaje": _dec(line.discount_percent),
        "descuento_valor": _amount(line.discount_value),
        "descuento_total": _amount(line.discount_amount),
        "subtotal": _amount(line.subtotal),
        "iva_porcentaje": _dec(line.vat_rate),
        "iva_valor": _amount(line.vat_amount),
        "retencion_porcentaje": _dec(line.withholding_rate),
        "retencion_valor": _amount(line.withholding_amount),
        "total": _amount(line.total),
        "concepto": line.note,
    }


def order_to_payload(order: Order) -> dict[str, Any]:
    """Serialize an order snapshot into a backend document."""
    totals = order.totals
    location = order.location
    client = order.client
    warehouse = order.warehouse
    return {
        "schema_version": SCHEMA_VERSION,
        "id": order.local_id,
        "id_backend": order.backend_id,
        "id_venta": order.sale_id,
        "fecha": order.created_at.isoformat(),
        "estado": _STATUS_TO_WIRE[order.status],
        "moneda": order.currency.code,
        "id_ubicacion": location.location_id if location else None,
        "ubicacion_nombre": order.location_name,
        "ubicacion": (
            {"id": location.location_id, "codigo": location.code, "nombre": location.name}
            if location else None
        ),
        "id_cliente": client.client_id if client else None,
        "cliente": (
            {"id": client.client_id, "nombre": client.name, "nit": client.tax_id}
            if client else None
        ),
        "id_bodega": warehouse.warehouse_id if warehouse else None,
        "bodega": (
            {
                "id": warehouse.warehouse_id,
                "nombre": warehouse.name,
                "consecutivo_bodegas": warehouse.consecutive_series,
            }
            if warehouse else None
        ),
        "productos": [line_to_payload(line) for line in order.lines],
        "subtotal": _amount(totals.subtotal),
        "descuento": _amount(totals.discount_total),
        "iva": _amount(totals.vat_total),
        "retencion": _amount(totals.withholding),
        "total": _amount(totals.total),
        "iva_por_tarifa": {
            _dec(rate): _amount(amount) for rate, amount in totals.vat_breakdown.items()
        },
    }


def payment_to_payload(
    order: Order,
    tenders: Sequence[TenderEntry],
    summary: TenderSummary,
    *,
    invoice_consecutive: str | None = None,
    resolution_id: str | None = None,
    observation: str = "",
    manual_date: datetime | date | None = None,
) -> dict[str, Any]:
    """Serialize a payment capture request for ``order``."""
    stamp = manual_date or order.created_at
    if isinstance(stamp, datetime):
        stamp = stamp.date()
    return {
        "schema_version": SCHEMA_VERSION,
        "id_pedido": order.backend_id,
        "id_ubicacion": order.location_id,
        "id_bodega": order.warehouse.warehouse_id if order.warehouse else None,
        "consecutivo_bodegas": order.warehouse.consecutive_series if order.warehouse else None,
        "id_cliente": order.client.client_id if order.client else None,
        "pagos": [{"id": t.method_id, "valor": _amount(t.amount)} for t in tenders],
        "total_a_pagar": _amount(summary.amount_due),
        "total_pagado": _amount(summary.total_paid),
        "cambio": _amount(summary.change),
        "productos": [line_to_payload(line) for line in order.lines],
        "consecutivo": invoice_consecutive,
        "id_resolucion": resolution_id,
        "observacion": observation or f"Venta {order.location_name}",
        "fecha_manual": stamp.isoformat(),
    }


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------


def _money(raw: Any, currency: Currency) -> Money:
    if raw is None or raw == "":
        return Money.zero(currency)
    return Money.of(str(raw), currency)


def _decimal(raw: Any) -> Decimal:
    if raw is None or raw == "":
        return Decimal("0")
    return Decimal(str(raw))


def _line_from_v1(raw: dict[str, Any], currency: Currency) -> OrderLine:
    return OrderLine(
        sequence=int(raw["consecutivo"]),
        product_id=str(raw["id_producto"]),
        name=raw.get("nombre", ""),
        quantity=_decimal(raw.get("cantidad")),
        unit_cost=_money(raw.get("costo"), currency),
        discount_percent=_decimal(raw.get("descuento_porcentaje")),
        discount_value=_money(raw.get("descuento_valor"), currency),
        discount_amount=_money(raw.get("descuento_total"), currency),
        subtotal=_money(raw.get("subtotal"), currency),
        vat_rate=_decimal(raw.get("iva_porcentaje")),
        vat_amount=_money(raw.get("iva_valor"), currency),
        withholding_rate=_decimal(raw.get("retencion_porcentaje")),
        withholding_amount=_money(raw.get("retencion_valor"), currency),
        total=_money(raw.get("total"), currency),
        note=raw.get("concepto") or "",
    )


def _read_v1(payload: dict[str, Any], backend_id: str | None) -> Order:
    currency = Currency(payload["moneda"])

    location = None
    if payload.get("ubicacion"):
        raw = payload["ubicacion"]
        location = LocationRef(
            location_id=str(raw["id"]), code=raw.get("codigo", ""), name=raw.get("nombre", "")
        )

    client = None
    if payload.get("cliente"):
        raw = payload["cliente"]
        client = ClientRef(client_id=str(raw["id"]), name=raw.get("nombre", ""), tax_id=raw.get("nit"))

    warehouse = None
    if payload.get("bodega"):
        raw = payload["bodega"]
        warehouse = WarehouseRef(
            warehouse_id=str(raw["id"]),
            name=raw.get("nombre", ""),
            consecutive_series=raw.get("consecutivo_bodegas"),
        )

    totals = OrderTotals(
        subtotal=_money(payload.get("subtotal"), currency),
        discount_total=_money(payload.get("descuento"), currency),
        vat_total=_money(payload.get("iva"), currency),
        withholding=_money(payload.get("retencion"), currency),
        total=_money(payload.get("total"), currency),
        vat_breakdown={
            Decimal(rate): _money(amount, currency)
            for rate, amount in (payload.get("iva_por_tarifa") or {}).items()
        },
    )

    return Order(
        local_id=payload["id"],
        created_at=datetime.fromisoformat(payload["fecha"]),
        currency=currency,
        location_name=payload.get("ubicacion_nombre") or (location.name if location else ""),
        status=_STATUS_FROM_WIRE[payload.get("estado", "pendiente")],
        lines=tuple(_line_from_v1(raw, currency) for raw in payload.get("productos", [])),
        totals=totals,
        backend_id=backend_id or payload.get("id_backend"),
        sale_id=payload.get("id_venta"),
        location=location,
        client=client,
        warehouse=warehouse,
    )


_READERS: dict[int, Callable[[dict[str, Any], str | None], Order]] = {
    1: _read_v1,
}


def payload_to_order(payload: dict[str, Any], backend_id: str | None = None) -> Order:
    """
    Deserialize a backend document into an Order snapshot.

    Args:
        payload: Backend document
        backend_id: Overrides the document's own ``id_backend`` when given

    Raises:
        UnsupportedPayloadVersionError: Unknown or missing ``schema_version``.
        MalformedPayloadError: Required field missing, unknown status, or a
            value that does not parse.
    """
    if not isinstance(payload, dict):
        raise MalformedPayloadError(backend_id, f"document is {type(payload).__name__}, not an object")

    version = payload.get("schema_version")
    reader = _READERS.get(version)  # type: ignore[arg-type]
    if reader is None:
        logger.warning("wire_unsupported_version", extra={"schema_version": version})
        raise UnsupportedPayloadVersionError(version)

    try:
        return reader(payload, backend_id)
    except (KeyError, ArithmeticError, ValueError, TypeError, AttributeError) as exc:
        ref = backend_id or payload.get("id_backend")
        reason = f"{type(exc).__name__}: {exc}"
        logger.warning("wire_malformed_payload", extra={
            "backend_id": ref,
            "schema_version": version,
            "reason": reason,
        })
        raise MalformedPayloadError(ref, reason) from exc
