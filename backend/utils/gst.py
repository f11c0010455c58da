import re
from decimal import Decimal, ROUND_HALF_UP

from config.constants import DEFAULT_STATE_CODE
from models.billing import TaxType

STATE_CODE_RE = re.compile(r"\d{2}")


def get_state_code(state: str | None) -> str:
    """
    GST state code from a state string ("09", "09-Uttar Pradesh", "27 MH").
    Falls back to the platform's home state when no code is present.
    """
    if not state:
        return DEFAULT_STATE_CODE
    match = STATE_CODE_RE.search(str(state))
    return match.group(0) if match else DEFAULT_STATE_CODE


def determine_tax_type(supplier_state: str | None, recipient_state: str | None) -> TaxType:
    if get_state_code(supplier_state) == get_state_code(recipient_state):
        return TaxType.CGST_SGST
    return TaxType.IGST


def calculate_gst(taxable_paise: int, gst_rate_percent) -> int:
    amount = Decimal(taxable_paise) * Decimal(str(gst_rate_percent)) / Decimal(100)
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def split_gst(gst_amount: int, tax_type: TaxType) -> dict:
    if TaxType(tax_type) == TaxType.CGST_SGST:
        # odd paise goes to SGST so the halves always add back up
        cgst = gst_amount // 2
        return {"cgst": cgst, "sgst": gst_amount - cgst, "igst": 0}
    return {"cgst": 0, "sgst": 0, "igst": gst_amount}
