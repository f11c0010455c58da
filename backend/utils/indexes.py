from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure


def _normalize_key_pairs(keys):
    return [(k, v) for k, v in keys]


async def _create_index_safe(collection, keys, **kwargs):
    """
    Create index safely.
    On IndexOptionsConflict/IndexKeySpecsConflict for the same key pattern,
    drop the conflicting index and recreate it with the desired options.
    """
    desired_key = _normalize_key_pairs(keys)
    desired_name = kwargs.get("name")
    try:
        await collection.create_index(keys, **kwargs)
        return
    except OperationFailure as e:
        if getattr(e, "code", None) not in {85, 86}:
            raise

        conflicting_names = []
        async for idx in collection.list_indexes():
            idx_key = _normalize_key_pairs(list(idx.get("key", {}).items()))
            if idx_key == desired_key:
                idx_name = idx.get("name")
                if idx_name and idx_name != desired_name:
                    conflicting_names.append(idx_name)

        for idx_name in conflicting_names:
            await collection.drop_index(idx_name)

        await collection.create_index(keys, **kwargs)


async def ensure_indexes(db):
    # Merchants
    await _create_index_safe(
        db.merchants,
        [("is_active", ASCENDING), ("account_status", ASCENDING)],
        name="merchants_active_status_idx",
    )

    # Orders
    await _create_index_safe(
        db.orders,
        [("merchant_id", ASCENDING), ("created_at", DESCENDING)],
        name="orders_merchant_created_at_idx",
    )
    await _create_index_safe(
        db.orders,
        [("idempotency_key", ASCENDING)],
        name="orders_idempotency_key_unique",
        unique=True,
        sparse=True,
    )
    await _create_index_safe(
        db.orders,
        [("payment.method", ASCENDING), ("payment.gateway_order_id", ASCENDING)],
        name="orders_gateway_order_idx",
    )

    # Ledger
    await _create_index_safe(
        db.ledger_entries,
        [("merchant_id", ASCENDING), ("type", ASCENDING), ("status", ASCENDING), ("created_at", ASCENDING)],
        name="ledger_merchant_type_status_created_idx",
    )
    await _create_index_safe(
        db.ledger_entries,
        [("order_id", ASCENDING), ("status", ASCENDING)],
        name="ledger_order_status_idx",
        sparse=True,
    )
    # one gross / fee / payout row per order; payout rows carry order_id=None
    await _create_index_safe(
        db.ledger_entries,
        [("order_id", ASCENDING), ("type", ASCENDING)],
        name="ledger_order_type_unique",
        unique=True,
        partialFilterExpression={"order_id": {"$type": "objectId"}},
    )

    # Settlement cycles
    await _create_index_safe(
        db.settlement_cycles,
        [("period_start", ASCENDING), ("period_end", ASCENDING)],
        name="settlement_cycles_period_unique",
        unique=True,
    )
    await _create_index_safe(
        db.settlement_cycles,
        [("status", ASCENDING), ("period_end", DESCENDING)],
        name="settlement_cycles_status_period_end_idx",
    )

    # Platform invoices
    await _create_index_safe(
        db.platform_invoices,
        [("invoice_number", ASCENDING)],
        name="platform_invoices_number_unique",
        unique=True,
    )
    await _create_index_safe(
        db.platform_invoices,
        [("merchant_id", ASCENDING), ("cycle_id", ASCENDING)],
        name="platform_invoices_merchant_cycle_unique",
        unique=True,
    )

    # Payout batches
    await _create_index_safe(
        db.payout_batches,
        [("merchant_id", ASCENDING), ("platform_invoice_id", ASCENDING)],
        name="payout_batches_merchant_invoice_unique",
        unique=True,
    )
    await _create_index_safe(
        db.payout_batches,
        [("status", ASCENDING), ("created_at", ASCENDING)],
        name="payout_batches_status_created_idx",
    )
    await _create_index_safe(
        db.payout_batches,
        [("razorpay_payout_id", ASCENDING)],
        name="payout_batches_razorpay_payout_idx",
        sparse=True,
    )

    # Store settings (merchant invoice counters)
    await _create_index_safe(
        db.store_settings,
        [("merchant_id", ASCENDING)],
        name="store_settings_merchant_unique",
        unique=True,
    )

    # Notification outbox
    await _create_index_safe(
        db.notification_outbox,
        [("status", ASCENDING), ("created_at", ASCENDING)],
        name="notification_outbox_status_created_idx",
    )
