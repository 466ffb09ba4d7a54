"""
Tax Engine.

Pure bill computation: no database, no clock, no I/O. Given the live lines
of an order and the resolved discount it produces the complete breakdown
that BillingService persists on an Invoice.

Order of operations:
    1. subtotal = sum of line totals
    2. taxable = subtotal - discount, the discount spread pro-rata over lines
    3. each tax component is computed on a line's discounted share
    4. service charge on the taxable amount, dine-in only
    5. total tax, zero when GST is removed for a registered customer
    6. grand total rounded half-up to a whole currency unit

Tax is always computed after the discount.
"""

from dataclasses import dataclass, field

from pos_shared.config.constants import OrderType, TaxCode
from pos_shared.utils.exceptions import MissingGstinForTaxRemovalError
from pos_shared.utils.money import apply_bps, allocate_pro_rata, round_to_whole_unit


@dataclass(frozen=True)
class TaxRate:
    """One component of a line's tax group, e.g. CGST at 250 bps."""

    code: str
    name: str
    rate_bps: int


@dataclass(frozen=True)
class BillLine:
    line_id: int
    total_cents: int
    taxes: tuple[TaxRate, ...] = ()


@dataclass(frozen=True)
class LineBreakdown:
    line_id: int
    gross_cents: int
    discount_share_cents: int
    taxable_cents: int
    tax_cents: int


@dataclass(frozen=True)
class TaxComponentTotal:
    code: str
    name: str
    rate_bps: int
    taxable_cents: int
    amount_cents: int


@dataclass(frozen=True)
class BillBreakdown:
    subtotal_cents: int
    discount_cents: int
    taxable_cents: int
    components: tuple[TaxComponentTotal, ...]
    total_tax_cents: int
    service_charge_cents: int
    pre_round_total_cents: int
    round_off_cents: int
    grand_total_cents: int
    lines: tuple[LineBreakdown, ...] = field(default=())


def collapse_interstate(taxes: tuple[TaxRate, ...]) -> tuple[TaxRate, ...]:
    """Replace a CGST + SGST pair by a single IGST component of the combined rate."""
    split = [t for t in taxes if t.code in (TaxCode.CGST, TaxCode.SGST)]
    if not split:
        return taxes
    others = tuple(t for t in taxes if t.code not in (TaxCode.CGST, TaxCode.SGST))
    igst = TaxRate(TaxCode.IGST, "Integrated GST", sum(t.rate_bps for t in split))
    return (igst,) + others


def calculate_bill(
    lines: list[BillLine],
    discount_cents: int,
    *,
    order_type: str,
    apply_service_charge: bool,
    service_charge_bps: int,
    remove_service_charge: bool = False,
    remove_gst: bool = False,
    customer_gstin: str | None = None,
    is_interstate: bool = False,
) -> BillBreakdown:
    """
    Compute the itemized bill for a set of live (non-cancelled) lines.

    Raises:
        MissingGstinForTaxRemovalError: remove_gst without a customer GSTIN.
    """
    if remove_gst and not (customer_gstin or "").strip():
        raise MissingGstinForTaxRemovalError()

    subtotal = sum(line.total_cents for line in lines)
    discount = min(max(discount_cents, 0), subtotal)
    taxable = subtotal - discount

    shares = allocate_pro_rata(discount, [line.total_cents for line in lines])

    components: dict[str, dict] = {}
    line_results = []
    for line, share in zip(lines, shares):
        line_taxable = line.total_cents - share
        line_tax = 0
        taxes = collapse_interstate(line.taxes) if is_interstate else line.taxes
        for tax in taxes:
            amount = apply_bps(line_taxable, tax.rate_bps)
            line_tax += amount
            bucket = components.setdefault(
                tax.code,
                {"name": tax.name, "rate_bps": tax.rate_bps, "taxable": 0, "amount": 0},
            )
            bucket["taxable"] += line_taxable
            bucket["amount"] += amount
        line_results.append(
            LineBreakdown(
                line_id=line.line_id,
                gross_cents=line.total_cents,
                discount_share_cents=share,
                taxable_cents=line_taxable,
                tax_cents=0 if remove_gst else line_tax,
            )
        )

    if remove_gst:
        component_totals: tuple[TaxComponentTotal, ...] = ()
    else:
        component_totals = tuple(
            TaxComponentTotal(
                code=code,
                name=bucket["name"],
                rate_bps=bucket["rate_bps"],
                taxable_cents=bucket["taxable"],
                amount_cents=bucket["amount"],
            )
            for code, bucket in components.items()
        )
    total_tax = sum(c.amount_cents for c in component_totals)

    service_charge = 0
    if apply_service_charge and not remove_service_charge and order_type == OrderType.DINE_IN:
        service_charge = apply_bps(taxable, service_charge_bps)

    pre_round = taxable + total_tax + service_charge
    grand_total = round_to_whole_unit(pre_round)

    return BillBreakdown(
        subtotal_cents=subtotal,
        discount_cents=discount,
        taxable_cents=taxable,
        components=component_totals,
        total_tax_cents=total_tax,
        service_charge_cents=service_charge,
        pre_round_total_cents=pre_round,
        round_off_cents=grand_total - pre_round,
        grand_total_cents=grand_total,
        lines=tuple(line_results),
    )
