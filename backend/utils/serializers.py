from bson import ObjectId
from datetime import date, datetime


def serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize_value(v) for v in value]
    return value


def serialize_doc(doc: dict | None) -> dict | None:
    if doc is None:
        return None
    data = serialize_value(doc)
    data["id"] = data.pop("_id", None)
    return data


def serialize_order(order: dict) -> dict:
    return {
        "id": str(order["_id"]),
        "merchant_id": str(order["merchant_id"]),
        "order_number": order["order_number"],

        "gross_amount_paise": order["gross_amount_paise"],
        "platform_fee_paise": order["platform_fee_paise"],
        "net_payable_paise": order["net_payable_paise"],

        "payment": serialize_value(order["payment"]),

        "stage": order["stage"],
        "invoice_number": order.get("invoice_number"),

        "created_at": order["created_at"].isoformat()
        if isinstance(order.get("created_at"), datetime)
        else None,
    }
