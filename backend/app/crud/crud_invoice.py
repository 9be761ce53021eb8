"""Invoice generation from approved timesheets.

Each generation run first *claims* its timesheets with a conditional write on
the invoice link (``clientInvoiceId`` / ``interpreterInvoiceId`` must still be
empty). Only claimed timesheets become line items, so two overlapping runs can
never bill the same timesheet twice. If a run fails after claiming, the
claims are released and the half-written invoice is voided. Line items are
frozen at generation time and stored in their own collection.
"""

import asyncio
import datetime as dt
import logging
from typing import Any, Dict, Iterable, List, Optional

from .. import models, schemas
from ..models.booking_status import BookingStatus
from ..models.invoice import (
    CLIENT_INVOICE_TRANSITIONS,
    INTERPRETER_INVOICE_TRANSITIONS,
    ClientInvoiceStatus,
    InterpreterInvoiceStatus,
    InvoiceModel,
)
from ..models.timesheet import TimesheetStatus
from ..services.billing_units import line_total, money, sum_money
from ..utils.errors import InvalidTransition, NothingToInvoice, ValidationFailed
from ..utils.status_logger import log_status_change
from .crud_interpreter import get_client, get_interpreter
from .crud_system import allocate_invoice_number, get_settings
from .crud_timesheet import APPROVED_STATUSES, TimesheetManager
from .persistence import PersistenceAdapter, new_id

logger = logging.getLogger(__name__)

C = models.Collections

PENDING_CLIENT_STATUSES = [ClientInvoiceStatus.DRAFT.value, ClientInvoiceStatus.SENT.value]


def _line_description(timesheet: schemas.Timesheet, booking: Optional[Dict[str, Any]]) -> str:
    day = timesheet.actual_start.date().isoformat()
    if not booking:
        return f"Interpreting on {day}"
    return (
        f"{booking.get('serviceType', 'Interpreting')} "
        f"{booking.get('languageFrom', '')} to {booking.get('languageTo', '')} on {day}"
    )


class InvoiceGenerator:
    def __init__(self, adapter: PersistenceAdapter):
        self.adapter = adapter

    # --- claiming -------------------------------------------------------

    async def _claim(self, timesheets: Iterable[schemas.Timesheet], link_field: str, invoice_id: str) -> List[schemas.Timesheet]:
        claimed = []
        for ts in timesheets:
            merged = await self.adapter.update_if(C.TIMESHEETS, ts.id, {link_field: [None]}, {link_field: invoice_id})
            if merged is None:
                logger.info("Timesheet %s already invoiced; skipping", ts.id)
                continue
            claimed.append(schemas.Timesheet.from_document(merged))
        return claimed

    async def _release(self, invoice_id: str, link_field: str, patch: Optional[Dict[str, Any]] = None) -> int:
        docs = await self.adapter.fetch_collection(C.TIMESHEETS, [(link_field, "==", invoice_id)])
        for doc in docs:
            await self.adapter.update_if(
                C.TIMESHEETS, doc["id"], {link_field: [invoice_id]}, {link_field: None, **(patch or {})}
            )
        if docs:
            logger.info("Released %d timesheet(s) from invoice %s", len(docs), invoice_id)
        return len(docs)

    async def _abandon(self, invoice_collection: str, invoice_id: str, link_field: str, void_status) -> None:
        """Undo a generation run that failed after claiming its timesheets."""
        logger.error("Invoice %s could not be completed; releasing its timesheets", invoice_id)
        await self._release(invoice_id, link_field)
        # The invoice record may or may not have been written before the failure
        await self.adapter.update(invoice_collection, invoice_id, {"status": void_status.value})

    async def _bookings_for(self, timesheets: List[schemas.Timesheet]) -> List[Optional[Dict[str, Any]]]:
        return list(await asyncio.gather(*(self.adapter.fetch_one(C.BOOKINGS, ts.booking_id) for ts in timesheets)))

    async def _move_bookings(self, booking_ids: Iterable[str], source: BookingStatus, target: BookingStatus) -> None:
        for booking_id in dict.fromkeys(booking_ids):
            moved = await self.adapter.update_if(C.BOOKINGS, booking_id, {"status": [source.value]}, {"status": target.value})
            if moved is not None:
                log_status_change("booking", booking_id, source, target)

    async def _write_lines(self, collection: str, invoice_id: str, lines: List[schemas.InvoiceLineItem]) -> List[schemas.InvoiceLineItem]:
        stored = []
        for line in lines:
            line = line.model_copy(update={"invoice_id": invoice_id})
            line_id = await self.adapter.write(collection, None, line.to_document())
            stored.append(line.model_copy(update={"id": line_id}))
        return stored

    async def _lines(self, collection: str, invoice_id: str) -> List[schemas.InvoiceLineItem]:
        docs = await self.adapter.fetch_collection(collection, [("invoiceId", "==", invoice_id)])
        return [schemas.InvoiceLineItem.from_document(d) for d in docs]

    # --- client side ----------------------------------------------------

    async def generate_client_invoice(
        self,
        client_id: str,
        period_start: dt.date,
        period_end: dt.date,
    ) -> Optional[schemas.ClientInvoice]:
        """Batch a client's approved, uninvoiced timesheets in a period into a DRAFT invoice.

        Raises ``NothingToInvoice`` rather than creating an empty invoice.
        """
        if period_end < period_start:
            raise ValidationFailed.for_field("periodEnd", "must not be before periodStart")
        client = await get_client(self.adapter, client_id)
        if client is None:
            return None

        docs = await self.adapter.fetch_collection(
            C.TIMESHEETS,
            [
                ("clientId", "==", client_id),
                ("adminApproved", "==", True),
                ("status", "in", APPROVED_STATUSES),
                ("clientInvoiceId", "==", None),
            ],
            ("actualStart", False),
        )
        candidates = [
            ts
            for ts in (schemas.Timesheet.from_document(d) for d in docs)
            if period_start <= ts.actual_start.date() <= period_end
        ]
        if not candidates:
            raise NothingToInvoice()

        invoice_id = new_id()
        claimed = await self._claim(candidates, "clientInvoiceId", invoice_id)
        if not claimed:
            raise NothingToInvoice()

        try:
            bookings = await self._bookings_for(claimed)
            lines = [
                schemas.InvoiceLineItem(
                    timesheet_id=ts.id,
                    booking_id=ts.booking_id,
                    description=_line_description(ts, booking),
                    units=ts.units_billable_to_client,
                    rate=ts.client_rate or 0,
                    total=line_total(ts.units_billable_to_client, ts.client_rate or 0),
                )
                for ts, booking in zip(claimed, bookings)
            ]

            system = await get_settings(self.adapter)
            terms = client.payment_terms_days or system.finance.payment_terms_days
            issue_date = dt.date.today()
            invoice = schemas.ClientInvoice(
                id=invoice_id,
                client_id=client_id,
                client_name=client.company_name,
                invoice_number=await allocate_invoice_number(self.adapter),
                issue_date=issue_date,
                due_date=issue_date + dt.timedelta(days=terms),
                period_start=period_start,
                period_end=period_end,
                status=ClientInvoiceStatus.DRAFT,
                total_amount=sum_money(line.total for line in lines),
                currency=system.finance.currency,
                timesheet_ids=[ts.id for ts in claimed],
            )
            await self.adapter.write(C.CLIENT_INVOICES, invoice_id, invoice.to_document(exclude={"items"}))
            items = await self._write_lines(C.CLIENT_INVOICE_LINES, invoice_id, lines)
        except Exception:
            await self._abandon(C.CLIENT_INVOICES, invoice_id, "clientInvoiceId", ClientInvoiceStatus.CANCELLED)
            raise

        for ts in claimed:
            await self.adapter.update(C.TIMESHEETS, ts.id, {"status": TimesheetStatus.INVOICED.value})
        await self._move_bookings((ts.booking_id for ts in claimed), BookingStatus.COMPLETED, BookingStatus.INVOICED)
        logger.info(
            "Client invoice %s (%s) generated for %s: %d line(s), %.2f %s",
            invoice.invoice_number,
            invoice_id,
            client_id,
            len(items),
            invoice.total_amount,
            invoice.currency,
        )
        return invoice.model_copy(update={"items": items})

    async def get_client_invoice(self, invoice_id: str) -> Optional[schemas.ClientInvoice]:
        doc = await self.adapter.fetch_one(C.CLIENT_INVOICES, invoice_id)
        if doc is None:
            return None
        doc["items"] = [i.model_dump(by_alias=True) for i in await self._lines(C.CLIENT_INVOICE_LINES, invoice_id)]
        return schemas.ClientInvoice.from_document(doc)

    async def list_client_invoices(
        self,
        client_id: Optional[str] = None,
        status: Optional[ClientInvoiceStatus] = None,
    ) -> List[schemas.ClientInvoice]:
        filters = []
        if client_id:
            filters.append(("clientId", "==", client_id))
        if status:
            filters.append(("status", "==", status.value))
        docs = await self.adapter.fetch_collection(C.CLIENT_INVOICES, filters, ("issueDate", True))
        return [schemas.ClientInvoice.from_document(d) for d in docs]

    async def set_client_invoice_status(
        self,
        invoice_id: str,
        status: ClientInvoiceStatus,
    ) -> Optional[schemas.ClientInvoice]:
        """DRAFT -> SENT -> PAID, or CANCELLED from DRAFT/SENT."""
        invoice = await self.get_client_invoice(invoice_id)
        if invoice is None:
            return None
        status = ClientInvoiceStatus(status)
        if status not in CLIENT_INVOICE_TRANSITIONS[invoice.status]:
            raise InvalidTransition(
                f"Cannot move client invoice from {invoice.status.value} to {status.value}",
                {"status": "invalid_transition"},
            )
        merged = await self.adapter.update_if(
            C.CLIENT_INVOICES, invoice_id, {"status": [invoice.status.value]}, {"status": status.value}
        )
        if merged is None:
            raise InvalidTransition("Invoice changed while updating; reload and retry")
        log_status_change("client_invoice", invoice_id, invoice.status, status)

        booking_ids = [line.booking_id for line in invoice.items if line.booking_id]
        if status == ClientInvoiceStatus.PAID:
            await self._move_bookings(booking_ids, BookingStatus.INVOICED, BookingStatus.PAID)
        elif status == ClientInvoiceStatus.CANCELLED:
            await self._release(invoice_id, "clientInvoiceId", {"status": TimesheetStatus.APPROVED.value})
        return invoice.model_copy(update={"status": status})

    # --- interpreter side -----------------------------------------------

    async def _selected_timesheets(self, interpreter_id: str, timesheet_ids: List[str]) -> List[schemas.Timesheet]:
        if not timesheet_ids:
            raise ValidationFailed.for_field("timesheetIds", "select at least one timesheet")
        selected = []
        for timesheet_id in dict.fromkeys(timesheet_ids):
            doc = await self.adapter.fetch_one(C.TIMESHEETS, timesheet_id)
            if doc is None:
                raise ValidationFailed.for_field("timesheetIds", f"Timesheet {timesheet_id} not found")
            ts = schemas.Timesheet.from_document(doc)
            if ts.interpreter_id != interpreter_id:
                raise ValidationFailed.for_field("timesheetIds", f"Timesheet {timesheet_id} belongs to another interpreter")
            if not ts.admin_approved or ts.status.value not in APPROVED_STATUSES:
                raise ValidationFailed.for_field("timesheetIds", f"Timesheet {timesheet_id} is not approved")
            if ts.interpreter_invoice_id:
                raise ValidationFailed.for_field("timesheetIds", f"Timesheet {timesheet_id} is already invoiced")
            selected.append(ts)
        return selected

    async def _store_interpreter_invoice(
        self,
        invoice: schemas.InterpreterInvoice,
        lines: List[schemas.InvoiceLineItem],
    ) -> schemas.InterpreterInvoice:
        await self.adapter.write(C.INTERPRETER_INVOICES, invoice.id, invoice.to_document(exclude={"items"}))
        items = await self._write_lines(C.INTERPRETER_INVOICE_LINES, invoice.id, lines)
        logger.info(
            "Interpreter invoice %s (%s) for %s: %d timesheet(s), %.2f",
            invoice.id,
            invoice.model.value,
            invoice.interpreter_id,
            len(invoice.timesheet_ids),
            invoice.total_amount,
        )
        return invoice.model_copy(update={"items": items})

    async def generate_from_upload(
        self,
        interpreter_id: str,
        timesheet_ids: List[str],
        reference: str,
        amount: float,
        uploaded_pdf_url: Optional[str] = None,
    ) -> Optional[schemas.InterpreterInvoice]:
        """Record an interpreter's own invoice against the timesheets it covers.

        The amount is taken as given; it becomes a single line so the total
        reconciles with the line items.
        """
        interpreter = await get_interpreter(self.adapter, interpreter_id)
        if interpreter is None:
            return None
        if amount is None or amount <= 0:
            raise ValidationFailed.for_field("amount", "must be greater than zero")
        selected = await self._selected_timesheets(interpreter_id, timesheet_ids)

        invoice_id = new_id()
        claimed = await self._claim(selected, "interpreterInvoiceId", invoice_id)
        if len(claimed) != len(selected):
            await self._release(invoice_id, "interpreterInvoiceId")
            raise InvalidTransition(
                "One or more timesheets were invoiced concurrently",
                {"timesheetIds": "already_invoiced"},
            )

        try:
            total = money(amount)
            line = schemas.InvoiceLineItem(
                description=f"Interpreter invoice {reference}".strip(),
                units=1,
                rate=total,
                total=total,
            )
            invoice = schemas.InterpreterInvoice(
                id=invoice_id,
                interpreter_id=interpreter_id,
                interpreter_name=interpreter.name,
                invoice_number=reference or None,
                issue_date=dt.date.today(),
                status=InterpreterInvoiceStatus.SUBMITTED,
                total_amount=total,
                currency=(await get_settings(self.adapter)).finance.currency,
                model=InvoiceModel.UPLOAD,
                external_invoice_reference=reference or None,
                uploaded_pdf_url=uploaded_pdf_url,
                timesheet_ids=[ts.id for ts in claimed],
            )
            return await self._store_interpreter_invoice(invoice, [line])
        except Exception:
            await self._abandon(C.INTERPRETER_INVOICES, invoice_id, "interpreterInvoiceId", InterpreterInvoiceStatus.REJECTED)
            raise

    async def generate_self_billed(self, interpreter_id: str) -> Optional[schemas.InterpreterInvoice]:
        """Self-billing invoice over every approved timesheet not yet on an interpreter invoice."""
        interpreter = await get_interpreter(self.adapter, interpreter_id)
        if interpreter is None:
            return None
        candidates = await TimesheetManager(self.adapter).list_uninvoiced_for_interpreter(interpreter_id)
        if not candidates:
            raise NothingToInvoice()
        invoice_id = new_id()
        claimed = await self._claim(candidates, "interpreterInvoiceId", invoice_id)
        if not claimed:
            raise NothingToInvoice()

        try:
            bookings = await self._bookings_for(claimed)
            lines = [
                schemas.InvoiceLineItem(
                    timesheet_id=ts.id,
                    booking_id=ts.booking_id,
                    description=_line_description(ts, booking),
                    units=ts.units_payable_to_interpreter,
                    rate=ts.interpreter_rate or 0,
                    total=line_total(ts.units_payable_to_interpreter, ts.interpreter_rate or 0),
                )
                for ts, booking in zip(claimed, bookings)
            ]
            invoice = schemas.InterpreterInvoice(
                id=invoice_id,
                interpreter_id=interpreter_id,
                interpreter_name=interpreter.name,
                invoice_number=await allocate_invoice_number(self.adapter),
                issue_date=dt.date.today(),
                status=InterpreterInvoiceStatus.SUBMITTED,
                total_amount=sum_money(line.total for line in lines),
                currency=(await get_settings(self.adapter)).finance.currency,
                model=InvoiceModel.SELF_BILLING,
                timesheet_ids=[ts.id for ts in claimed],
            )
            return await self._store_interpreter_invoice(invoice, lines)
        except Exception:
            await self._abandon(C.INTERPRETER_INVOICES, invoice_id, "interpreterInvoiceId", InterpreterInvoiceStatus.REJECTED)
            raise

    async def get_interpreter_invoice(self, invoice_id: str) -> Optional[schemas.InterpreterInvoice]:
        doc = await self.adapter.fetch_one(C.INTERPRETER_INVOICES, invoice_id)
        if doc is None:
            return None
        doc["items"] = [i.model_dump(by_alias=True) for i in await self._lines(C.INTERPRETER_INVOICE_LINES, invoice_id)]
        return schemas.InterpreterInvoice.from_document(doc)

    async def list_interpreter_invoices(
        self,
        interpreter_id: Optional[str] = None,
        status: Optional[InterpreterInvoiceStatus] = None,
    ) -> List[schemas.InterpreterInvoice]:
        filters = []
        if interpreter_id:
            filters.append(("interpreterId", "==", interpreter_id))
        if status:
            filters.append(("status", "==", status.value))
        docs = await self.adapter.fetch_collection(C.INTERPRETER_INVOICES, filters, ("issueDate", True))
        return [schemas.InterpreterInvoice.from_document(d) for d in docs]

    async def set_interpreter_invoice_status(
        self,
        invoice_id: str,
        status: InterpreterInvoiceStatus,
    ) -> Optional[schemas.InterpreterInvoice]:
        """SUBMITTED -> APPROVED -> PAID, or REJECTED from SUBMITTED."""
        invoice = await self.get_interpreter_invoice(invoice_id)
        if invoice is None:
            return None
        status = InterpreterInvoiceStatus(status)
        if status not in INTERPRETER_INVOICE_TRANSITIONS[invoice.status]:
            raise InvalidTransition(
                f"Cannot move interpreter invoice from {invoice.status.value} to {status.value}",
                {"status": "invalid_transition"},
            )
        merged = await self.adapter.update_if(
            C.INTERPRETER_INVOICES, invoice_id, {"status": [invoice.status.value]}, {"status": status.value}
        )
        if merged is None:
            raise InvalidTransition("Invoice changed while updating; reload and retry")
        log_status_change("interpreter_invoice", invoice_id, invoice.status, status)
        if status == InterpreterInvoiceStatus.REJECTED:
            await self._release(invoice_id, "interpreterInvoiceId")
        return invoice.model_copy(update={"status": status})

    # --- dashboard ------------------------------------------------------

    async def billing_stats(self) -> schemas.BillingStats:
        pending_client, pending_interp, pending_ts = await asyncio.gather(
            self.adapter.fetch_collection(C.CLIENT_INVOICES, [("status", "in", PENDING_CLIENT_STATUSES)]),
            self.adapter.fetch_collection(
                C.INTERPRETER_INVOICES, [("status", "==", InterpreterInvoiceStatus.SUBMITTED.value)]
            ),
            self.adapter.fetch_collection(
                C.TIMESHEETS,
                [("status", "==", TimesheetStatus.SUBMITTED.value), ("adminApproved", "==", False)],
            ),
        )
        return schemas.BillingStats(
            pending_client_invoices=len(pending_client),
            pending_client_amount=sum_money(d.get("totalAmount") for d in pending_client),
            pending_interpreter_invoices=len(pending_interp),
            pending_timesheets=len(pending_ts),
        )
