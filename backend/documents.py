"""
Plain-text rendering of print job payloads (receipts, invoices, kitchen orders)
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from models import PaperSize, PrintJobType

STORE_HEADER = ["POS SYSTEM", "123 Business Street", "City, State 12345", "Phone: (555) 123-4567"]

LINE_WIDTH = {
    PaperSize.MM58: 32,
    PaperSize.MM80: 48,
    PaperSize.A4: 80,
    PaperSize.LETTER: 80,
}

INVOICE_TERMS_DAYS = 30


def _amount(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _money(value) -> str:
    return f"${_amount(value):.2f}"


def _name(value, fallback: str = "N/A") -> str:
    """Names arrive either as {"name": ...} objects or as bare strings"""
    if isinstance(value, dict):
        value = value.get("name")
    return str(value) if value else fallback


def _quantity(item: Dict) -> str:
    quantity = item.get("quantity")
    return str(quantity) if quantity is not None else "0"


def _short_id(data: Dict) -> str:
    doc_id = data.get("id")
    return str(doc_id)[-8:] if doc_id else "N/A"


def _timestamp(data: Dict, now: Optional[datetime]) -> datetime:
    raw = data.get("createdAt")
    if raw:
        try:
            return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
        except ValueError:
            pass
    return now or datetime.now()


def _pair(left: str, right: str, width: int) -> str:
    gap = max(1, width - len(left) - len(right))
    return f"{left}{' ' * gap}{right}"


def document_totals(data: Dict) -> Dict[str, float]:
    """Subtotal, tax, discount and grand total of a sale payload"""
    subtotal = _amount(data.get("totalAmount"))
    tax = _amount(data.get("taxAmount"))
    discount = _amount(data.get("discount"))
    return {
        "subtotal": subtotal,
        "tax": tax,
        "discount": discount,
        "total": subtotal + tax - discount,
    }


def _totals_block(data: Dict, width: int) -> List[str]:
    totals = document_totals(data)
    lines = [_pair("Subtotal:", _money(totals["subtotal"]), width)]
    if totals["tax"] > 0:
        lines.append(_pair("Tax:", _money(totals["tax"]), width))
    if totals["discount"] > 0:
        lines.append(_pair("Discount:", "-" + _money(totals["discount"]), width))
    lines.append(_pair("TOTAL:", _money(totals["total"]), width))
    return lines


def _items(data: Dict) -> List[Dict]:
    items = data.get("saleItems")
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def _product_name(item: Dict) -> str:
    return _name(item.get("product"), "Unknown")


def render_receipt(data: Dict, width: int = 48, now: Optional[datetime] = None) -> str:
    created = _timestamp(data, now)
    rule = "-" * width
    lines = [line.center(width).rstrip() for line in STORE_HEADER]
    lines.append(rule)
    lines.append(_pair("Receipt #:", _short_id(data), width))
    lines.append(_pair("Date:", created.strftime("%Y-%m-%d"), width))
    lines.append(_pair("Time:", created.strftime("%H:%M:%S"), width))
    lines.append(_pair("Cashier:", _name(data.get("user")), width))
    if data.get("customerName"):
        lines.append(_pair("Customer:", str(data["customerName"]), width))
    lines.append(rule)

    for item in _items(data):
        lines.append(_pair(_product_name(item), _money(item.get("totalPrice")), width))
        lines.append(f"  {_quantity(item)} x {_money(item.get('unitPrice'))}")
    lines.append(rule)

    lines.extend(_totals_block(data, width))
    lines.append(_pair("Payment:", str(data.get("paymentMethod") or "N/A").upper(), width))
    lines.append(rule)
    lines.append("Thank you for your business!".center(width).rstrip())
    lines.append("Returns accepted within 30 days".center(width).rstrip())
    lines.append("with original receipt".center(width).rstrip())
    lines.append(f"Receipt ID: {_short_id(data)}".center(width).rstrip())
    return "\n".join(lines) + "\n"


def render_invoice(data: Dict, width: int = 80, now: Optional[datetime] = None) -> str:
    created = _timestamp(data, now)
    due = created + timedelta(days=INVOICE_TERMS_DAYS)
    rule = "=" * width

    lines = ["INVOICE", ""] + STORE_HEADER + [""]
    lines.append(f"Invoice #: {_short_id(data)}")
    lines.append(f"Date: {created.strftime('%Y-%m-%d')}")
    lines.append(f"Due Date: {due.strftime('%Y-%m-%d')}")
    lines.append("")
    lines.append("Bill To:")
    for key in ("customerName", "customerEmail", "customerPhone"):
        if data.get(key):
            lines.append(f"  {data[key]}")
    if not data.get("customerName"):
        lines.append("  N/A")
    lines.append(rule)

    desc_width = max(10, width - 36)
    lines.append(f"{'Description':<{desc_width}}{'Qty':>8}{'Price':>14}{'Total':>14}")
    lines.append("-" * width)
    for item in _items(data):
        name = _product_name(item)[:desc_width - 1]
        lines.append(
            f"{name:<{desc_width}}{_quantity(item):>8}"
            f"{_money(item.get('unitPrice')):>14}{_money(item.get('totalPrice')):>14}"
        )
    lines.append(rule)

    for line in _totals_block(data, 36):
        lines.append(line.rjust(width))
    lines.append("")
    lines.append("Thank you for your business!".center(width).rstrip())
    lines.append(f"Payment terms: Net {INVOICE_TERMS_DAYS} days".center(width).rstrip())
    lines.append(f"Invoice ID: {_short_id(data)}".center(width).rstrip())
    return "\n".join(lines) + "\n"


def render_kitchen_order(data: Dict, width: int = 32, now: Optional[datetime] = None) -> str:
    created = _timestamp(data, now)
    lines = [
        "KITCHEN ORDER".center(width).rstrip(),
        f"Order #{_short_id(data)}".center(width).rstrip(),
        created.strftime("%H:%M:%S").center(width).rstrip(),
    ]
    if data.get("table"):
        lines.append(f"Table: {data['table']}".center(width).rstrip())
    lines.append("=" * width)

    for item in _items(data):
        lines.append(f"{_quantity(item)}x {_product_name(item)}")
        if item.get("notes"):
            lines.append(f"   Notes: {item['notes']}")
        lines.append("-" * width)

    lines.append("Please prepare order promptly".center(width).rstrip())
    return "\n".join(lines) + "\n"


def render_generic(data: Any, width: int = 48) -> str:
    if not isinstance(data, dict):
        return f"{data}\n"
    return "\n".join(_pair(f"{key}:", str(value), width) for key, value in data.items()) + "\n"


RENDERERS = {
    PrintJobType.RECEIPT: render_receipt,
    PrintJobType.INVOICE: render_invoice,
    PrintJobType.KITCHEN_ORDER: render_kitchen_order,
}


def render_document(job_type: PrintJobType, data: Any, paper_size: PaperSize = PaperSize.MM80,
                    now: Optional[datetime] = None) -> str:
    """Render a job payload for the target printer's paper width"""
    width = LINE_WIDTH.get(paper_size, 48)
    renderer = RENDERERS.get(PrintJobType(job_type))
    if renderer is None or not isinstance(data, dict):
        return render_generic(data, width)
    return renderer(data, width=width, now=now)
