"""
Module: pos_services.order_lifecycle
Responsibility: Owns the authoritative in-memory order set of one terminal,
    exposes every order mutation, and drives reconciliation with the backend
    through a ReconciliationGateway.
Architecture position: Services.  Composes pos_engines (tax, aggregation,
    occupancy, tender) over pos_kernel domain snapshots.  The UI calls this
    class and reads the Order snapshots it returns; nothing else mutates
    orders.

State machine (per order):
    pending --[add/update/remove line, bind client/warehouse/location]--> pending
    pending --[complete_order(result with sale id)]--> completed   (terminal)
    pending --[delete_order, backend confirms]--> removed

Invariants enforced:
    - Every stored snapshot carries totals recomputed from its lines by
      OrderAggregator; no aggregate is edited on its own.
    - A rise in the session withholding ratchet reprices every pending
      order, so capture never settles against a stale amount due.
    - Sequence numbers are stable; removal never renumbers.
    - A location is held by at most one pending order.
    - Completed orders reject every mutation (OrderCompletedError).
    - Backend ids are merged id-only into the latest snapshot; lines added
      while a create was in flight are never overwritten.
    - A pending order that reached the backend is removed locally only after
      the backend confirms the delete.

Failure modes:
    - InvalidInputError from the tax engine propagates to the caller before
      any state changes.
    - ReconciliationError during background writes is logged, reported to
      the notifier, and leaves local state untouched (order UNSYNCED).
    - ReconciliationError during an awaited operation (load, capture)
      propagates, except NotFound which maps to "no existing order".
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from pos_engines.aggregation import OrderAggregator
from pos_engines.occupancy import find_holder, occupied_locations
from pos_engines.tax import LineTaxCalculator
from pos_engines.tender import settle
from pos_kernel.domain.catalog import ClientRef, LocationRef, Product, WarehouseRef
from pos_kernel.domain.clock import Clock, SystemClock
from pos_kernel.domain.order import Order, OrderLine, OrderStatus
from pos_kernel.domain.session import SessionConfig, ValidationConfig
from pos_kernel.domain.values import Currency, Money
from pos_kernel.exceptions import (
    BackendOrderNotFoundError,
    BackendUnavailableError,
    LineNotFoundError,
    LocationOccupiedError,
    MissingSaleIdError,
    OrderCompletedError,
    OrderNotFoundError,
    PaymentIncompleteError,
    ReconciliationError,
)
from pos_kernel.logging_config import LogContext, get_logger
from pos_services.gateway import CaptureResult, PaymentRequest, ReconciliationGateway
from pos_services.sync import Notifier, PersistQueue, SyncState

logger = get_logger("services.order_lifecycle")

OrderRef = Order | str


class OrderLifecycleManager:
    """
    Terminal order ledger.

    Line and binding mutations are synchronous: they update the in-memory
    set, return the new snapshot and schedule a background write. They must
    be called from a running event loop. Operations that depend on the
    backend's answer (claim, load, capture, delete) are coroutines.

    Args:
        gateway: Backend of record
        session: Session settings, including the withholding ratchet
        clock: Time source for order ids and creation stamps
        notifier: Called with (order_id, error) when a background write fails
    """

    def __init__(
        self,
        gateway: ReconciliationGateway,
        session: SessionConfig,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
        tax_calculator: LineTaxCalculator | None = None,
        aggregator: OrderAggregator | None = None,
    ):
        self._gateway = gateway
        self._session = session
        self._clock = clock or SystemClock()
        self._notifier = notifier
        self._tax = tax_calculator or LineTaxCalculator()
        self._aggregator = aggregator or OrderAggregator()
        self._orders: dict[str, Order] = {}
        self._queue = PersistQueue(self._flush, notifier=notifier)
        self._last_id_ms = 0

    @classmethod
    async def open_session(
        cls,
        gateway: ReconciliationGateway,
        currency: Currency | str,
        fallback_validation: ValidationConfig,
        counter_label: str = "Mostrador",
        clock: Clock | None = None,
        notifier: Notifier | None = None,
    ) -> OrderLifecycleManager:
        """
        Build a manager with validation settings fetched from the backend.

        ``fallback_validation`` is used when the backend has no settings or
        cannot be reached.
        """
        if isinstance(currency, str):
            currency = Currency(currency)
        try:
            validation = await gateway.fetch_validation_config()
        except ReconciliationError as exc:
            logger.warning(
                "validation_config_unavailable",
                extra={"error_code": exc.code, "error": str(exc)},
            )
            validation = None
        if validation is None:
            validation = fallback_validation
            logger.info("validation_config_fallback")

        session = SessionConfig(
            currency=currency,
            validation=validation,
            counter_label=counter_label,
        )
        logger.info("pos_session_opened", extra={
            "currency": currency.code,
            "pricing_mode": session.pricing_mode.value,
        })
        return cls(gateway, session, clock=clock, notifier=notifier)

    @property
    def session(self) -> SessionConfig:
        return self._session

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_local_id(self) -> str:
        millis = int(self._clock.now().timestamp() * 1000)
        if millis <= self._last_id_ms:
            millis = self._last_id_ms + 1
        self._last_id_ms = millis
        return f"order-{millis}"

    @staticmethod
    def _key(order: OrderRef) -> str:
        return order.local_id if isinstance(order, Order) else order

    def _require(self, order: OrderRef) -> Order:
        order_id = self._key(order)
        current = self._orders.get(order_id)
        if current is None:
            raise OrderNotFoundError(order_id)
        return current

    def _require_pending(self, order: OrderRef, operation: str) -> Order:
        current = self._require(order)
        if not current.is_pending:
            raise OrderCompletedError(current.local_id, operation)
        return current

    def _recompute(self, order: Order) -> Order:
        return self._aggregator.recompute(
            order=order,
            pricing_mode=self._session.pricing_mode,
            withholding_rate=self._session.withholding.rate,
            withholding_threshold=self._session.withholding.threshold,
        )

    def _commit(self, order: Order, event: str, **fields: object) -> Order:
        """Recompute, store and schedule a write for ``order``."""
        updated = self._recompute(order)
        self._orders[updated.local_id] = updated
        with LogContext.bind(order_id=updated.local_id, location_id=updated.location_id):
            logger.info(event, extra={
                "order_id": updated.local_id,
                "line_count": len(updated.lines),
                "total": str(updated.totals.total.amount),
                **fields,
            })
        self._queue.schedule(updated.local_id)
        return updated

    def _reprice_pending(self, exclude_order_id: str) -> None:
        """Recompute every other pending order under the current withholding policy."""
        for order_id, order in list(self._orders.items()):
            if order_id == exclude_order_id or not order.is_pending:
                continue
            updated = self._recompute(order)
            if updated.totals == order.totals:
                continue
            self._orders[order_id] = updated
            self._queue.schedule(order_id)
            logger.info("order_repriced", extra={
                "order_id": order_id,
                "withholding": str(updated.totals.withholding.amount),
                "total": str(updated.totals.total.amount),
            })

    def _price_line(
        self,
        sequence: int,
        product: Product,
        quantity: Decimal,
        discount_percent: Decimal,
        discount_value: Money,
        note: str,
    ) -> OrderLine:
        result = self._tax.compute_line(
            product=product,
            quantity=quantity,
            pricing_mode=self._session.pricing_mode,
            discount_percent=discount_percent,
            discount_value=discount_value,
        )
        return OrderLine(
            sequence=sequence,
            product_id=product.product_id,
            name=product.display_name,
            quantity=quantity,
            unit_cost=product.unit_price,
            discount_percent=discount_percent,
            discount_value=discount_value,
            discount_amount=result.discount_amount,
            subtotal=result.subtotal,
            vat_rate=result.vat_rate,
            vat_amount=result.vat_amount,
            withholding_rate=result.withholding_rate,
            withholding_amount=result.withholding_amount,
            total=result.line_total,
            note=note,
        )

    @staticmethod
    def _replace_line(order: Order, line: OrderLine) -> tuple[OrderLine, ...]:
        return tuple(line if existing.sequence == line.sequence else existing for existing in order.lines)

    async def _flush(self, order_id: str) -> None:
        order = self._orders.get(order_id)
        if order is None or not order.is_pending:
            return

        if order.backend_id is None:
            ref = await self._gateway.create_or_draft(order)
        else:
            ref = await self._gateway.persist(order)

        latest = self._orders.get(order_id)
        if latest is not None and latest.backend_id != ref.backend_id:
            self._orders[order_id] = replace(latest, backend_id=ref.backend_id)
            logger.info("backend_id_merged", extra={
                "order_id": order_id,
                "backend_id": ref.backend_id,
            })

    def _adopt(self, fetched: Order) -> Order:
        """Insert a backend order, replacing any local copy with the same backend id."""
        local_id = fetched.local_id
        for existing in self._orders.values():
            if fetched.backend_id is not None and existing.backend_id == fetched.backend_id:
                local_id = existing.local_id
                break
        adopted = self._recompute(replace(fetched, local_id=local_id))
        self._orders[local_id] = adopted
        self._queue.mark_synced(local_id)
        logger.info("order_adopted", extra={
            "order_id": local_id,
            "backend_id": adopted.backend_id,
            "status": adopted.status.value,
        })
        return adopted

    def _notify(self, order_id: str, exc: ReconciliationError) -> None:
        if self._notifier is not None:
            self._notifier(order_id, exc)

    # ------------------------------------------------------------------
    # Creation and lines
    # ------------------------------------------------------------------

    def create_order(
        self,
        location: LocationRef | None = None,
        client: ClientRef | None = None,
        warehouse: WarehouseRef | None = None,
    ) -> Order:
        """
        Start a pending order and request its backend id in the background.

        Client and warehouse default to the session's validation settings.

        Raises:
            LocationOccupiedError: ``location`` is held by another pending order.
        """
        if location is not None:
            holder = find_holder(self._orders.values(), location.location_id)
            if holder is not None:
                raise LocationOccupiedError(location.location_id, holder.local_id)

        validation = self._session.validation
        order = Order(
            local_id=self._new_local_id(),
            created_at=self._clock.now(),
            currency=self._session.currency,
            location_name=location.name if location else self._session.counter_label,
            location=location,
            client=client or validation.default_client,
            warehouse=warehouse or validation.default_warehouse,
        )
        return self._commit(order, "order_created")

    def add_line(
        self,
        order: OrderRef,
        product: Product,
        quantity: Decimal = Decimal("1"),
        note: str = "",
    ) -> Order:
        """
        Add ``quantity`` of ``product``.

        A product already on the order has its quantity increased in place,
        keeping its sequence number, unit cost, discounts and note.
        """
        current = self._require_pending(order, "add a line to")

        existing = current.line_for_product(product.product_id)
        if existing is not None:
            line = self._price_line(
                existing.sequence,
                replace(product, code="", name=existing.name, unit_price=existing.unit_cost),
                existing.quantity + quantity,
                existing.discount_percent,
                existing.discount_value,
                existing.note,
            )
            lines = self._replace_line(current, line)
        else:
            line = self._price_line(
                current.next_sequence,
                product,
                quantity,
                Decimal("0"),
                Money.zero(current.currency),
                note,
            )
            lines = current.lines + (line,)

        # Priced first so a rejected line never moves the ratchet
        if self._session.observe_product(product.tax_profile):
            self._reprice_pending(exclude_order_id=current.local_id)

        return self._commit(
            replace(current, lines=lines),
            "line_added",
            product_id=product.product_id,
            sequence=line.sequence,
            quantity=str(line.quantity),
        )

    def update_line(
        self,
        order: OrderRef,
        sequence: int,
        *,
        quantity: Decimal | None = None,
        unit_cost: Money | None = None,
        discount_percent: Decimal | None = None,
        discount_value: Money | None = None,
        note: str | None = None,
    ) -> Order:
        """
        Edit one line. Unspecified fields keep their current values.

        A quantity of zero or less removes the line.
        """
        current = self._require_pending(order, "update a line of")
        line = current.line(sequence)
        if line is None:
            raise LineNotFoundError(current.local_id, sequence)

        if quantity is not None and quantity <= 0:
            return self.remove_line(current.local_id, sequence=sequence)

        product = line.product_view()
        if unit_cost is not None:
            product = replace(product, unit_price=unit_cost)

        updated_line = self._price_line(
            sequence,
            product,
            quantity if quantity is not None else line.quantity,
            discount_percent if discount_percent is not None else line.discount_percent,
            discount_value if discount_value is not None else line.discount_value,
            note if note is not None else line.note,
        )
        return self._commit(
            replace(current, lines=self._replace_line(current, updated_line)),
            "line_updated",
            sequence=sequence,
        )

    def remove_line(
        self,
        order: OrderRef,
        sequence: int | None = None,
        product_id: str | None = None,
    ) -> Order:
        """Remove a line by sequence number or by product id."""
        if (sequence is None) == (product_id is None):
            raise ValueError("Pass exactly one of sequence or product_id")

        current = self._require_pending(order, "remove a line from")
        if sequence is not None:
            target = current.line(sequence)
            ref: int | str = sequence
        else:
            target = current.line_for_product(product_id)
            ref = product_id
        if target is None:
            raise LineNotFoundError(current.local_id, ref)

        lines = tuple(line for line in current.lines if line.sequence != target.sequence)
        return self._commit(
            replace(current, lines=lines),
            "line_removed",
            sequence=target.sequence,
            product_id=target.product_id,
        )

    # ------------------------------------------------------------------
    # Bindings
    # ------------------------------------------------------------------

    def bind_client(self, order: OrderRef, client: ClientRef | None) -> Order:
        current = self._require_pending(order, "bind a client to")
        return self._commit(
            replace(current, client=client),
            "client_bound",
            client_id=client.client_id if client else None,
        )

    def bind_warehouse(self, order: OrderRef, warehouse: WarehouseRef | None) -> Order:
        current = self._require_pending(order, "bind a warehouse to")
        return self._commit(
            replace(current, warehouse=warehouse),
            "warehouse_bound",
            warehouse_id=warehouse.warehouse_id if warehouse else None,
        )

    def bind_location(self, order: OrderRef, location: LocationRef | None) -> Order:
        """
        Move the order to ``location``; None returns it to the counter.

        Raises:
            LocationOccupiedError: Another pending order holds the location.
        """
        current = self._require_pending(order, "bind a location to")
        if location is not None:
            holder = find_holder(
                self._orders.values(),
                location.location_id,
                exclude_order_id=current.local_id,
            )
            if holder is not None:
                raise LocationOccupiedError(location.location_id, holder.local_id)

        return self._commit(
            replace(
                current,
                location=location,
                location_name=location.name if location else self._session.counter_label,
            ),
            "location_bound",
            location_id=location.location_id if location else None,
        )

    async def claim_location(self, location: LocationRef) -> Order:
        """
        Return the open order for ``location``, creating one if none exists.

        Looks locally first, then asks the backend. When the backend cannot
        be reached, or its document cannot be read, a local order is started
        and the failure is reported.
        """
        holder = find_holder(self._orders.values(), location.location_id)
        if holder is not None:
            return holder

        with LogContext.bind(location_id=location.location_id):
            try:
                fetched = await self._gateway.fetch_by_location(location.location_id)
            except BackendOrderNotFoundError:
                fetched = None
            except ReconciliationError as exc:
                logger.warning("claim_location_lookup_failed", extra={
                    "location_id": location.location_id,
                    "error_code": exc.code,
                })
                self._notify(location.location_id, exc)
                fetched = None

            # A local order may have claimed the location while we waited
            holder = find_holder(self._orders.values(), location.location_id)
            if holder is not None:
                return holder

            if fetched is not None and fetched.is_pending:
                logger.info("location_claimed_from_backend", extra={
                    "location_id": location.location_id,
                    "backend_id": fetched.backend_id,
                })
                return self._adopt(fetched)

            return self.create_order(location=location)

    # ------------------------------------------------------------------
    # Loading, completion, payment, deletion
    # ------------------------------------------------------------------

    async def load_order(self, backend_id: str) -> Order | None:
        """Fetch an order by backend id into the local set. None if unknown."""
        try:
            fetched = await self._gateway.fetch_by_id(backend_id)
        except BackendOrderNotFoundError:
            logger.info("load_order_not_found", extra={"backend_id": backend_id})
            return None
        return self._adopt(fetched)

    def complete_order(self, order: OrderRef, result: CaptureResult) -> Order:
        """
        Mark the order completed with the captured sale.

        Raises:
            MissingSaleIdError: ``result`` carries no sale id.
        """
        current = self._require_pending(order, "complete")
        if not result.sale_id:
            raise MissingSaleIdError(current.local_id)

        completed = replace(
            current,
            status=OrderStatus.COMPLETED,
            sale_id=result.sale_id,
            backend_id=result.backend_id or current.backend_id,
        )
        self._orders[completed.local_id] = completed
        self._queue.mark_synced(completed.local_id)
        logger.info("order_completed", extra={
            "order_id": completed.local_id,
            "backend_id": completed.backend_id,
            "sale_id": completed.sale_id,
            "total": str(completed.totals.total.amount),
        })
        return completed

    async def capture_payment(self, order: OrderRef, payment: PaymentRequest) -> Order:
        """
        Capture payment and complete the order.

        Waits for the order's outstanding write so the backend captures the
        latest snapshot.

        Raises:
            PaymentIncompleteError: Tenders do not cover total minus withholding.
            BackendUnavailableError: The order never reached the backend.
            ReconciliationError: The capture call itself failed.
        """
        current = self._require_pending(order, "capture payment for")
        self._check_settled(current, payment)

        await self._queue.wait_idle(current.local_id)
        latest = self._require_pending(current.local_id, "capture payment for")
        if latest.backend_id is None:
            # Last write failed; try once more before giving up
            self._queue.schedule(latest.local_id)
            await self._queue.wait_idle(latest.local_id)
            latest = self._require_pending(current.local_id, "capture payment for")
            if latest.backend_id is None:
                raise BackendUnavailableError("capture_payment", "order has no backend id")
        self._check_settled(latest, payment)

        with LogContext.bind(order_id=latest.local_id, backend_id=latest.backend_id):
            result = await self._gateway.capture_payment(latest, payment)
            return self.complete_order(latest.local_id, result)

    @staticmethod
    def _check_settled(order: Order, payment: PaymentRequest) -> None:
        summary = settle(order.totals.amount_due, payment.tenders)
        if not summary.is_settled:
            raise PaymentIncompleteError(
                order.local_id,
                str(summary.amount_due.amount),
                str(summary.remaining.amount),
            )

    async def delete_order(self, order: OrderRef) -> bool:
        """
        Delete a pending order.

        Returns:
            True if the order was removed. False if the backend refused or
            failed, in which case the order stays pending and unchanged.
        """
        current = self._require_pending(order, "delete")
        order_id = current.local_id

        await self._queue.wait_idle(order_id)
        current = self._orders.get(order_id)
        if current is None:
            return True
        if not current.is_pending:
            raise OrderCompletedError(order_id, "delete")

        with LogContext.bind(order_id=order_id, backend_id=current.backend_id):
            if current.backend_id is not None:
                try:
                    confirmed = await self._gateway.delete(current.backend_id)
                except ReconciliationError as exc:
                    logger.warning("order_delete_failed", extra={
                        "order_id": order_id,
                        "error_code": exc.code,
                        "error": str(exc),
                    })
                    self._notify(order_id, exc)
                    return False
                if not confirmed:
                    logger.warning("order_delete_refused", extra={"order_id": order_id})
                    return False

            self._orders.pop(order_id, None)
            self._queue.forget(order_id)
            logger.info("order_deleted", extra={
                "order_id": order_id,
                "backend_id": current.backend_id,
            })
            return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def orders(self) -> tuple[Order, ...]:
        """All orders in creation order."""
        return tuple(self._orders.values())

    def get(self, order_id: str) -> Order:
        return self._require(order_id)

    def pending_orders(self) -> tuple[Order, ...]:
        return tuple(order for order in self._orders.values() if order.is_pending)

    def search_orders(self, term: str = "", status: OrderStatus | None = None) -> tuple[Order, ...]:
        """Case-insensitive match on location name or local id."""
        needle = term.strip().lower()
        return tuple(
            order
            for order in self._orders.values()
            if (status is None or order.status == status)
            and (not needle or needle in order.location_name.lower() or needle in order.local_id.lower())
        )

    def count_by_status(self) -> dict[OrderStatus, int]:
        counts = {status: 0 for status in OrderStatus}
        for order in self._orders.values():
            counts[order.status] += 1
        return counts

    def occupied_locations(self) -> frozenset[str]:
        return occupied_locations(self._orders.values())

    def sync_state(self, order: OrderRef) -> SyncState:
        return self._queue.state(self._key(order))

    async def drain(self) -> None:
        """Wait for every background write to settle."""
        await self._queue.drain()
