from fastapi import APIRouter, Depends, HTTPException, Query, status

from database import get_db
from models.billing import CreateOrderPayload
from utils.guards import parse_object_id
from utils.invoice_numbers import allocate_invoice_number_for_order
from utils.orders import cancel_order, create_order, mark_cod_collected, price_order
from utils.serializers import serialize_order

router = APIRouter(prefix="/orders", tags=["Orders"])


# =====================================================
# FEE QUOTE (no writes)
# =====================================================

@router.get("/fee-quote")
async def fee_quote(
    merchant_id: str,
    gross_amount_paise: int = Query(..., ge=0),
    db=Depends(get_db),
):
    priced = await price_order(db, parse_object_id(merchant_id, "merchant_id"), gross_amount_paise)
    return {
        "gross_amount_paise": priced["gross_amount_paise"],
        "platform_fee_paise": priced["platform_fee_paise"],
        "net_payable_paise": priced["net_payable_paise"],
        "fee_config": priced["fee_config"].dict(),
    }


# =====================================================
# CREATE ORDER (fee stamped once, idempotent)
# =====================================================

@router.post("", status_code=status.HTTP_201_CREATED)
async def place_order(data: CreateOrderPayload, db=Depends(get_db)):
    if data.payment_method == "RAZORPAY" and not data.gateway_order_id:
        raise HTTPException(400, "gateway_order_id is required for Razorpay orders")

    order, created = await create_order(
        db,
        merchant_id=data.merchant_id,
        order_number=data.order_number,
        gross_amount_paise=data.gross_amount_paise,
        payment_method=data.payment_method,
        idempotency_key=data.idempotency_key,
        gateway_order_id=data.gateway_order_id,
    )
    return {"created": created, "order": serialize_order(order)}


# =====================================================
# COD COLLECTED
# =====================================================

@router.post("/{order_id}/cod-collected")
async def cod_collected(order_id: str, db=Depends(get_db)):
    order = await mark_cod_collected(db, order_id)
    return {"order": serialize_order(order)}


# =====================================================
# CANCEL (unpaid prepaid orders only)
# =====================================================

@router.post("/{order_id}/cancel")
async def cancel(order_id: str, db=Depends(get_db)):
    order = await cancel_order(db, order_id)
    return {"order": serialize_order(order)}


# =====================================================
# MERCHANT INVOICE NUMBER
# =====================================================

@router.post("/{order_id}/invoice-number")
async def order_invoice_number(order_id: str, db=Depends(get_db)):
    result = await allocate_invoice_number_for_order(db, parse_object_id(order_id, "order_id"))
    return {
        "order_id": order_id,
        "invoice_number": result["invoice_number"],
        "invoice_issued_at": result["invoice_issued_at"],
    }
