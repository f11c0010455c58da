import logging
from datetime import datetime

from bson import ObjectId

logger = logging.getLogger(__name__)

PAYOUT_PROCESSED_EVENT = "payout_processed"


async def enqueue_notification(db, *, event: str, target: str, payload: dict) -> ObjectId:
    """
    Queue a request for the external email sender. Delivery is not tracked here.
    """
    doc = {
        "_id": ObjectId(),
        "event": event,
        "target": target,
        "payload": payload,
        "status": "queued",
        "created_at": datetime.utcnow(),
    }
    await db.notification_outbox.insert_one(doc)
    logger.info("NOTIFICATION_QUEUED event=%s target=%s", event, target)
    return doc["_id"]
