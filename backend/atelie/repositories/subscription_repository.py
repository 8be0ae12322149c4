"""
Subscription repository for data access operations.

Encapsulates all database operations for subscriptions with:
- Atomic upsert keyed on user_id (safe under concurrent webhook redelivery)
- Consistent query patterns
"""

import logging
from typing import Optional, Dict, Any
from datetime import datetime, timezone

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from atelie.models.base import generate_uuid
from atelie.models.subscription import Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)

# Columns the upsert is allowed to write
UPSERT_FIELDS = frozenset({
    "status",
    "external_reference",
    "plan_id",
    "current_period_end",
    "activated_on",
    "canceled_on",
})


def _dialect_insert(dialect_name: str):
    """Return the dialect-specific insert() supporting ON CONFLICT, or None."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    return None


class SubscriptionRepository:
    """Repository for subscription data access."""

    def __init__(self, db_session: Session):
        """
        Initialize repository with database session.

        Args:
            db_session: SQLAlchemy database session
        """
        self.db = db_session

    def get_for_user(self, user_id: str) -> Optional[Subscription]:
        """Get the subscription for a user, if any."""
        return self.db.query(Subscription).filter(
            Subscription.user_id == user_id
        ).first()

    def create_pending(self, user_id: str, plan_id: str) -> Subscription:
        """
        Create the signup default for a new ceramista.

        Does not commit; the caller commits together with the profile.
        """
        subscription = Subscription(
            id=generate_uuid(),
            user_id=user_id,
            status=SubscriptionStatus.PENDING.value,
            plan_id=plan_id,
        )
        self.db.add(subscription)
        return subscription

    def upsert_for_user(self, user_id: str, fields: Dict[str, Any]) -> Subscription:
        """
        Insert or update the subscription row for user_id and commit.

        Uses a single INSERT ... ON CONFLICT (user_id) DO UPDATE statement so
        concurrent deliveries for the same user converge (last write wins).

        Args:
            user_id: Profile id (upsert key)
            fields: Column values to write, subset of UPSERT_FIELDS

        Returns:
            The committed Subscription

        Raises:
            ValueError: If fields contains unknown columns
            SQLAlchemyError: If the statement or commit fails (after rollback)
        """
        unknown = set(fields) - UPSERT_FIELDS
        if unknown:
            raise ValueError(f"Unknown subscription fields: {sorted(unknown)}")

        now = datetime.now(timezone.utc)

        try:
            insert = _dialect_insert(self.db.get_bind().dialect.name)
            if insert is None:
                self._upsert_orm(user_id, fields, now)
            else:
                table = Subscription.__table__
                values = {
                    "id": generate_uuid(),
                    "user_id": user_id,
                    "plan_id": fields.get("plan_id", ""),
                    "created_at": now,
                    "updated_at": now,
                    **fields,
                }
                stmt = insert(table).values(**values)
                update_columns = {name: stmt.excluded[name] for name in fields}
                update_columns["updated_at"] = stmt.excluded.updated_at
                stmt = stmt.on_conflict_do_update(
                    index_elements=[table.c.user_id],
                    set_=update_columns,
                )
                self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Subscription upsert failed", extra={
                "user_id": user_id,
                "error": str(e),
            })
            raise

        subscription = self.get_for_user(user_id)

        logger.info("Subscription upserted", extra={
            "user_id": user_id,
            "subscription_id": subscription.id if subscription else None,
            "status": fields.get("status"),
        })

        return subscription

    def _upsert_orm(self, user_id: str, fields: Dict[str, Any], now: datetime) -> None:
        """Get-or-create fallback for dialects without ON CONFLICT."""
        subscription = self.get_for_user(user_id)
        if subscription is None:
            subscription = Subscription(id=generate_uuid(), user_id=user_id, created_at=now)
            self.db.add(subscription)
        for name, value in fields.items():
            setattr(subscription, name, value)
        subscription.updated_at = now

