import html
from datetime import datetime
from typing import Any, Dict, Optional

from dates import utcnow
from errors import BillUnavailableError
from quotes import APPROVED

ONES = ["", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine"]
TEENS = ["Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen", "Seventeen", "Eighteen", "Nineteen"]
TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]


def bill_number(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    millis = str(int(now.timestamp() * 1000))
    return f"INV-{now:%Y%m%d}-{millis[-6:]}"


def _two_digit(n: int) -> str:
    if n < 10:
        return ONES[n]
    if n < 20:
        return TEENS[n - 10]
    return f"{TENS[n // 10]} {ONES[n % 10]}".strip()


def amount_in_words(amount: float) -> str:
    """Whole-rupee amount in words using crore/lakh grouping."""
    num = int(amount)
    if num == 0:
        return "Zero"
    crore, rest = divmod(num, 10000000)
    lakh, rest = divmod(rest, 100000)
    thousand, rest = divmod(rest, 1000)
    hundred, remainder = divmod(rest, 100)

    words = []
    if crore:
        # amounts past 99 crore are spelled from the crore group recursively
        words.append(f"{amount_in_words(crore) if crore > 99 else _two_digit(crore)} Crore")
    if lakh:
        words.append(f"{_two_digit(lakh)} Lakh")
    if thousand:
        words.append(f"{_two_digit(thousand)} Thousand")
    if hundred:
        words.append(f"{ONES[hundred]} Hundred")
    if remainder:
        words.append(_two_digit(remainder))
    return " ".join(words)


def prepare_bill(quote: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    if quote["status"] != APPROVED:
        raise BillUnavailableError()
    now = now or utcnow()
    costs = quote["cost_breakdown"]
    return {
        "bill_number": bill_number(now),
        "date": now.strftime("%d %b %Y"),
        "customer": {"name": quote["customer_name"], "email": quote["customer_email"]},
        "product_name": quote["product_name"],
        "dimensions": quote["dimensions"],
        "area": round(quote["area"], 2),
        "items": [
            {"label": "Material Cost", "amount": round(costs["material_cost"], 2)},
            {"label": "Labor Cost", "amount": round(costs["labor_cost"], 2)},
            {"label": "Transport Cost", "amount": round(costs["transport_cost"], 2)},
        ],
        "grand_total": round(costs["grand_total"], 2),
        "amount_in_words": f"{amount_in_words(costs['grand_total'])} Rupees Only",
    }


def render_bill_html(bill: Dict[str, Any]) -> str:
    e = html.escape
    dims = bill["dimensions"]
    items_html = "".join(
        f"<tr><td>{e(i['label'])}</td><td style='text-align:right'>{i['amount']:,.2f}</td></tr>" for i in bill["items"]
    )
    return f"""
    <html><head><title>{e(bill['bill_number'])}</title><style>body{{font-family:sans-serif;margin:2rem}}table{{width:100%;border-collapse:collapse}}td,th{{border:1px solid #eee;padding:8px}}</style></head>
    <body>
      <h1>Invoice {e(bill['bill_number'])}</h1>
      <p>Date: {e(bill['date'])}</p>
      <p>Customer: {e(bill['customer']['name'])} ({e(bill['customer']['email'])})</p>
      <p>Product: {e(bill['product_name'])}</p>
      <p>Dimensions: L {dims['length']:g} ft x W {dims['width']:g} ft x H {dims['height']:g} ft, area {bill['area']:,.2f} sq ft</p>
      <table><thead><tr><th>Item</th><th>Amount (INR)</th></tr></thead>
      <tbody>{items_html}</tbody></table>
      <h2>Grand Total: {bill['grand_total']:,.2f}</h2>
      <p>{e(bill['amount_in_words'])}</p>
    </body></html>
    """
