from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.deps import get_current_active_user, get_tenant_session
from timetrack.db.models.users import User
from timetrack.schemas.invoices import InvoiceCreate, InvoiceRead, InvoiceStatusUpdate, InvoiceUpdate
from timetrack.services.exports import dated_filename, export_dataframe, invoice_pdf
from timetrack.services.invoicing import InvoiceService

router = APIRouter(prefix="/invoices", tags=["Invoices"])


# PUBLIC_INTERFACE
@router.get("", response_model=List[InvoiceRead], summary="List invoices")
async def list_invoices(
    status: Optional[str] = Query(None),
    client_id: Optional[UUID] = Query(None),
    search: Optional[str] = Query(None, description="Invoice number or client name"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[InvoiceRead]:
    invoices = await InvoiceService(session).list_invoices(
        user, status=status, client_id=client_id, search=search, limit=limit, offset=offset
    )
    return [InvoiceRead.model_validate(i) for i in invoices]


# PUBLIC_INTERFACE
@router.get("/export", summary="Export invoices", response_class=StreamingResponse)
async def export_invoices(
    export_format: str = Query("csv", alias="format", pattern="^(csv|xlsx|pdf)$"),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> StreamingResponse:
    df = await InvoiceService(session).export_frame(user)
    return export_dataframe(df, dated_filename("invoices"), export_format)


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=InvoiceRead,
    status_code=201,
    summary="Create invoice",
    description="Totals are recomputed server-side; linked time logs are attached to the invoice.",
)
async def create_invoice(
    payload: InvoiceCreate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> InvoiceRead:
    invoice = await InvoiceService(session).create(user, payload)
    return InvoiceRead.model_validate(invoice)


# PUBLIC_INTERFACE
@router.get("/{invoice_id}", response_model=InvoiceRead, summary="Get invoice")
async def get_invoice(
    invoice_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> InvoiceRead:
    invoice = await InvoiceService(session).get(user, invoice_id)
    return InvoiceRead.model_validate(invoice)


# PUBLIC_INTERFACE
@router.put("/{invoice_id}", response_model=InvoiceRead, summary="Update invoice")
async def update_invoice(
    invoice_id: UUID,
    payload: InvoiceUpdate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> InvoiceRead:
    invoice = await InvoiceService(session).update(user, invoice_id, payload)
    return InvoiceRead.model_validate(invoice)


# PUBLIC_INTERFACE
@router.delete("/{invoice_id}", status_code=204, summary="Delete invoice")
async def delete_invoice(
    invoice_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> Response:
    await InvoiceService(session).delete(user, invoice_id)
    return Response(status_code=204)


# PUBLIC_INTERFACE
@router.post("/{invoice_id}/send", response_model=InvoiceRead, summary="Send invoice")
async def send_invoice(
    invoice_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> InvoiceRead:
    invoice = await InvoiceService(session).send(user, invoice_id)
    return InvoiceRead.model_validate(invoice)


# PUBLIC_INTERFACE
@router.patch("/{invoice_id}/status", response_model=InvoiceRead, summary="Change invoice status")
async def update_invoice_status(
    invoice_id: UUID,
    payload: InvoiceStatusUpdate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> InvoiceRead:
    invoice = await InvoiceService(session).update_status(user, invoice_id, payload)
    return InvoiceRead.model_validate(invoice)


# PUBLIC_INTERFACE
@router.get("/{invoice_id}/pdf", summary="Download invoice PDF", response_class=StreamingResponse)
async def download_invoice_pdf(
    invoice_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> StreamingResponse:
    invoice = await InvoiceService(session).get(user, invoice_id)
    return invoice_pdf(invoice)
