from motor.motor_asyncio import AsyncIOMotorDatabase
from datetime import datetime
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

AUDIT_COLLECTION = "audit_logs"

class AuditService:
    """Service for immutable audit logging of quantity reconciliation"""
    
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db[AUDIT_COLLECTION]
    
    async def log_action(
        self,
        entity_type: str,
        entity_id: str,
        action_type: str,
        actor_id: Optional[str] = None,
        old_value: Optional[Dict[str, Any]] = None,
        new_value: Optional[Dict[str, Any]] = None
    ):
        """
        Log an action to audit trail (INSERT ONLY).
        """
        try:
            audit_entry = {
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action_type": action_type,
                "actor_id": actor_id,
                "old_value_json": old_value,
                "new_value_json": new_value,
                "timestamp": datetime.utcnow()
            }
            
            await self.collection.insert_one(audit_entry)
            logger.info(f"Audit log created: {action_type} on {entity_type}:{entity_id} by {actor_id}")
        except Exception as e:
            # Don't fail the main operation if audit logging fails
            logger.error(f"Failed to create audit log: {str(e)}")
