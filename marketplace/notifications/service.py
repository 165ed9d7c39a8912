"""
Notifications utilisateur (table 'notifications').
Fire-and-forget: appelé via BackgroundTasks, ne lève jamais.
"""
import logging
from typing import Any, Dict

import marketplace.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)


def send_purchase_confirmation(user_id: str, payload: Dict[str, Any]) -> bool:
    try:
        (
            supabase_client.get_service_supabase()
            .table("notifications")
            .insert({"user_id": user_id, "kind": "purchase_confirmation", "payload": payload})
            .execute()
        )
        return True
    except Exception:
        logger.exception("notifications.send_purchase_confirmation failed user_id=%s", user_id)
        return False
