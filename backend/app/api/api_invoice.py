import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import ORJSONResponse

from .. import schemas
from ..crud import InvoiceGenerator, PersistenceAdapter, crud_interpreter, crud_system
from ..models.invoice import ClientInvoiceStatus, InterpreterInvoiceStatus
from ..models.user import UserRole
from ..services.invoice_pdf import render_client_invoice_pdf
from ..utils import error_response
from .dependencies import get_adapter, get_current_actor, get_current_admin, get_current_interpreter

router = APIRouter(tags=["invoices"], default_response_class=ORJSONResponse)
logger = logging.getLogger(__name__)


def _not_found(what: str, key: str):
    return error_response(f"{what} not found", {key: "not_found"}, status.HTTP_404_NOT_FOUND)


def _interpreter_for(actor: schemas.Actor, interpreter_id: Optional[str]) -> str:
    if actor.role == UserRole.INTERPRETER:
        return actor.party_id
    if not interpreter_id:
        raise error_response("interpreterId is required", {"interpreterId": "required"})
    return interpreter_id


# ─── Client invoices ────────────────────────────────────────────────────────


@router.post(
    "/client-invoices/generate",
    response_model=schemas.ClientInvoice,
    status_code=status.HTTP_201_CREATED,
)
async def generate_client_invoice(
    payload: schemas.ClientInvoiceGenerate,
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    """Invoice a client for approved timesheets in a period (409 if there are none)."""
    invoice = await InvoiceGenerator(adapter).generate_client_invoice(
        payload.client_id, payload.period_start, payload.period_end
    )
    if invoice is None:
        raise _not_found("Client", "client_id")
    return invoice


@router.get("/client-invoices", response_model=List[schemas.ClientInvoice])
async def list_client_invoices(
    client_id: Optional[str] = Query(default=None),
    status_filter: Optional[ClientInvoiceStatus] = Query(default=None, alias="status"),
    actor: schemas.Actor = Depends(get_current_actor),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    if actor.role == UserRole.CLIENT:
        client_id = actor.party_id
    elif actor.role != UserRole.ADMIN:
        raise error_response("Not authorized", {}, status.HTTP_403_FORBIDDEN)
    return await InvoiceGenerator(adapter).list_client_invoices(client_id, status_filter)


async def _visible_client_invoice(
    invoice_id: str, actor: schemas.Actor, adapter: PersistenceAdapter
) -> schemas.ClientInvoice:
    invoice = await InvoiceGenerator(adapter).get_client_invoice(invoice_id)
    if invoice is None or actor.role == UserRole.INTERPRETER:
        raise _not_found("Invoice", "invoice_id")
    if actor.role == UserRole.CLIENT and invoice.client_id != actor.party_id:
        raise _not_found("Invoice", "invoice_id")
    return invoice


@router.get("/client-invoices/{invoice_id}", response_model=schemas.ClientInvoice)
async def read_client_invoice(
    invoice_id: str,
    actor: schemas.Actor = Depends(get_current_actor),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    return await _visible_client_invoice(invoice_id, actor, adapter)


@router.get("/client-invoices/{invoice_id}/pdf")
async def client_invoice_pdf(
    invoice_id: str,
    actor: schemas.Actor = Depends(get_current_actor),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    invoice = await _visible_client_invoice(invoice_id, actor, adapter)
    system = await crud_system.get_settings(adapter)
    client = await crud_interpreter.get_client(adapter, invoice.client_id)
    pdf = render_client_invoice_pdf(invoice, system, client)
    filename = f"{invoice.invoice_number}.pdf"
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


@router.patch("/client-invoices/{invoice_id}/status", response_model=schemas.ClientInvoice)
async def update_client_invoice_status(
    invoice_id: str,
    payload: schemas.ClientInvoiceStatusUpdate,
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    invoice = await InvoiceGenerator(adapter).set_client_invoice_status(invoice_id, payload.status)
    if invoice is None:
        raise _not_found("Invoice", "invoice_id")
    return invoice


# ─── Interpreter invoices ───────────────────────────────────────────────────


@router.post(
    "/interpreter-invoices/upload",
    response_model=schemas.InterpreterInvoice,
    status_code=status.HTTP_201_CREATED,
)
async def upload_interpreter_invoice(
    payload: schemas.InterpreterInvoiceUpload,
    actor: schemas.Actor = Depends(get_current_interpreter),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    """Register an interpreter's own invoice (PDF already stored) against their timesheets."""
    interpreter_id = _interpreter_for(actor, payload.interpreter_id)
    invoice = await InvoiceGenerator(adapter).generate_from_upload(
        interpreter_id,
        payload.timesheet_ids,
        payload.reference,
        payload.amount,
        payload.uploaded_pdf_url,
    )
    if invoice is None:
        raise _not_found("Interpreter", "interpreterId")
    return invoice


@router.post(
    "/interpreter-invoices/self-billing",
    response_model=schemas.InterpreterInvoice,
    status_code=status.HTTP_201_CREATED,
)
async def generate_self_billed_invoice(
    payload: schemas.SelfBillingGenerate,
    actor: schemas.Actor = Depends(get_current_interpreter),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    interpreter_id = _interpreter_for(actor, payload.interpreter_id)
    invoice = await InvoiceGenerator(adapter).generate_self_billed(interpreter_id)
    if invoice is None:
        raise _not_found("Interpreter", "interpreterId")
    return invoice


@router.get("/interpreter-invoices", response_model=List[schemas.InterpreterInvoice])
async def list_interpreter_invoices(
    interpreter_id: Optional[str] = Query(default=None),
    status_filter: Optional[InterpreterInvoiceStatus] = Query(default=None, alias="status"),
    actor: schemas.Actor = Depends(get_current_interpreter),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    if actor.role == UserRole.INTERPRETER:
        interpreter_id = actor.party_id
    return await InvoiceGenerator(adapter).list_interpreter_invoices(interpreter_id, status_filter)


@router.get("/interpreter-invoices/{invoice_id}", response_model=schemas.InterpreterInvoice)
async def read_interpreter_invoice(
    invoice_id: str,
    actor: schemas.Actor = Depends(get_current_interpreter),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    invoice = await InvoiceGenerator(adapter).get_interpreter_invoice(invoice_id)
    if invoice is None or (actor.role == UserRole.INTERPRETER and invoice.interpreter_id != actor.party_id):
        raise _not_found("Invoice", "invoice_id")
    return invoice


@router.patch("/interpreter-invoices/{invoice_id}/status", response_model=schemas.InterpreterInvoice)
async def update_interpreter_invoice_status(
    invoice_id: str,
    payload: schemas.InterpreterInvoiceStatusUpdate,
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    invoice = await InvoiceGenerator(adapter).set_interpreter_invoice_status(invoice_id, payload.status)
    if invoice is None:
        raise _not_found("Invoice", "invoice_id")
    return invoice


@router.get("/billing/stats", response_model=schemas.BillingStats)
async def billing_stats(
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    return await InvoiceGenerator(adapter).billing_stats()
