"""
Billing router - invoices and payments.
Thin router delegating to BillingService.
"""

from fastapi import APIRouter, Depends, status

from pos_shared.security.auth import Actor, current_actor
from pos_shared.utils.schemas import (
    CancelInvoiceRequest,
    GenerateBillRequest,
    InvoiceOutput,
    PaymentOutput,
    PaymentRequest,
    SplitPaymentRequest,
    UpdateChargesRequest,
)
from pos_api.core.dependencies import get_billing_service
from pos_api.services.domain import BillingService, PaymentInput

router = APIRouter(prefix="/api", tags=["billing"])


@router.post("/orders/{order_id}/bill", response_model=InvoiceOutput, status_code=status.HTTP_201_CREATED)
def generate_bill(
    order_id: int,
    body: GenerateBillRequest | None = None,
    actor: Actor = Depends(current_actor),
    service: BillingService = Depends(get_billing_service),
) -> InvoiceOutput:
    """Issue the invoice of a served order."""
    body = body or GenerateBillRequest()
    invoice = service.generate_bill(
        order_id,
        actor,
        apply_service_charge=body.apply_service_charge,
        customer_name=body.customer_name,
        customer_gstin=body.customer_gstin,
    )
    return InvoiceOutput.model_validate(invoice)


@router.get("/invoices/pending", response_model=list[InvoiceOutput])
def list_pending_invoices(
    actor: Actor = Depends(current_actor),
    service: BillingService = Depends(get_billing_service),
) -> list[InvoiceOutput]:
    return [InvoiceOutput.model_validate(i) for i in service.list_pending_invoices(actor)]


@router.get("/invoices/{invoice_id}", response_model=InvoiceOutput)
def get_invoice(
    invoice_id: int,
    actor: Actor = Depends(current_actor),
    service: BillingService = Depends(get_billing_service),
) -> InvoiceOutput:
    return InvoiceOutput.model_validate(service.get_invoice(invoice_id, actor))


@router.put("/invoices/{invoice_id}/charges", response_model=InvoiceOutput)
def update_charges(
    invoice_id: int,
    body: UpdateChargesRequest,
    actor: Actor = Depends(current_actor),
    service: BillingService = Depends(get_billing_service),
) -> InvoiceOutput:
    invoice = service.update_charges(
        invoice_id,
        actor,
        remove_service_charge=body.remove_service_charge,
        remove_gst=body.remove_gst,
        customer_gstin=body.customer_gstin,
    )
    return InvoiceOutput.model_validate(invoice)


@router.post("/invoices/{invoice_id}/cancel", response_model=InvoiceOutput)
def cancel_invoice(
    invoice_id: int,
    body: CancelInvoiceRequest,
    actor: Actor = Depends(current_actor),
    service: BillingService = Depends(get_billing_service),
) -> InvoiceOutput:
    return InvoiceOutput.model_validate(service.cancel_invoice(invoice_id, body.reason, actor))


@router.post("/payments", response_model=PaymentOutput, status_code=status.HTTP_201_CREATED)
def record_payment(
    body: PaymentRequest,
    actor: Actor = Depends(current_actor),
    service: BillingService = Depends(get_billing_service),
) -> PaymentOutput:
    payment = service.record_payment(
        body.invoice_id,
        actor,
        amount_cents=body.amount_cents,
        mode=body.mode,
        tip_cents=body.tip_cents,
        reference=body.reference,
        order_id=body.order_id,
    )
    return PaymentOutput.model_validate(payment)


@router.post("/payments/split", response_model=list[PaymentOutput], status_code=status.HTTP_201_CREATED)
def record_split_payment(
    body: SplitPaymentRequest,
    actor: Actor = Depends(current_actor),
    service: BillingService = Depends(get_billing_service),
) -> list[PaymentOutput]:
    parts = [
        PaymentInput(mode=p.mode, amount_cents=p.amount_cents, tip_cents=p.tip_cents, reference=p.reference)
        for p in body.payments
    ]
    payments = service.record_split_payment(body.invoice_id, parts, actor, order_id=body.order_id)
    return [PaymentOutput.model_validate(p) for p in payments]
