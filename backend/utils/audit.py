from datetime import datetime


async def log_audit(
    db,
    *,
    action: str,
    entity: str,
    entity_id=None,
    actor: str = "admin",
    metadata: dict | None = None,
):
    """
    Record an admin configuration change (fee overrides, packages, billing profile).
    """
    await db.audit_logs.insert_one({
        "actor": actor,
        "action": action,
        "entity": entity,
        "entity_id": str(entity_id) if entity_id is not None else None,
        "metadata": metadata or {},
        "created_at": datetime.utcnow(),
    })
