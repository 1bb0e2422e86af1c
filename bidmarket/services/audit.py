import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from bidmarket.models.audit_log import AuditLog


def record_transition(
    db: AsyncSession,
    *,
    bid_request_id: uuid.UUID,
    entity: str,
    to_status: str,
    from_status: str | None = None,
    retailer_bid_id: uuid.UUID | None = None,
    actor_type: str | None = None,
    actor_id: uuid.UUID | None = None,
    reason: str | None = None,
    metadata: dict | None = None,
) -> AuditLog:
    """Stage an audit row in the caller's transaction."""
    audit = AuditLog(
        bid_request_id=bid_request_id,
        retailer_bid_id=retailer_bid_id,
        entity=entity,
        from_status=from_status,
        to_status=to_status,
        actor_type=actor_type,
        actor_id=actor_id,
        reason=reason,
        extra_data=metadata,
    )
    db.add(audit)
    return audit
