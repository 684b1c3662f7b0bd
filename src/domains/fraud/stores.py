"""Persistence for activity logs, blacklist entries and fraud alerts.

Each store opens its own short-lived session per call so detectors can read
concurrently; an AsyncSession must never be shared across tasks.
"""

import uuid
from datetime import datetime

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db.models import ActivityRecordDB, BlacklistEntryDB, FraudAlertDB

from .exceptions import AlertAlreadyResolvedError, AlertNotFoundError, BlacklistEntryNotFoundError
from .models import (
    ActivityRecord,
    AlertType,
    BlacklistEntry,
    EntityType,
    EvaluationRequest,
    FraudAlert,
    Severity,
)

logger = structlog.get_logger()

SessionFactory = async_sessionmaker[AsyncSession]

# Rows scanned when looking for the last record that carries a country
LOCATION_SCAN_LIMIT = 10


class ActivityLogStore:
    """Append-only log of evaluated actions."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def append(
        self,
        request: EvaluationRequest,
        risk_score: int,
        flagged: bool,
        timestamp: datetime,
    ) -> ActivityRecord:
        row = ActivityRecordDB(
            id=str(uuid.uuid4()),
            user_id=request.user_id,
            activity_type=request.activity_type.value,
            ip_address=request.ip_address,
            user_agent=request.user_agent,
            device_fingerprint=request.device_fingerprint,
            location=request.location.model_dump() if request.location else None,
            session_id=request.session_id,
            risk_score=risk_score,
            flagged=flagged,
            metadata_=request.metadata,
            created_at=timestamp,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        return ActivityRecord.from_row(row)

    async def count_since(self, user_id: int, activity_type: str, since: datetime) -> int:
        stmt = select(func.count()).where(
            ActivityRecordDB.user_id == user_id,
            ActivityRecordDB.activity_type == activity_type,
            ActivityRecordDB.created_at >= since,
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one()

    async def count_flagged_since(self, user_id: int, since: datetime) -> int:
        stmt = select(func.count()).where(
            ActivityRecordDB.user_id == user_id,
            ActivityRecordDB.flagged.is_(True),
            ActivityRecordDB.created_at >= since,
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one()

    async def recent(self, user_id: int, limit: int) -> list[ActivityRecord]:
        stmt = (
            select(ActivityRecordDB)
            .where(ActivityRecordDB.user_id == user_id)
            .order_by(ActivityRecordDB.created_at.desc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [ActivityRecord.from_row(row) for row in result.scalars().all()]

    async def latest_with_location(self, user_id: int) -> ActivityRecord | None:
        stmt = (
            select(ActivityRecordDB)
            .where(
                ActivityRecordDB.user_id == user_id,
                ActivityRecordDB.location.is_not(None),
            )
            .order_by(ActivityRecordDB.created_at.desc())
            .limit(LOCATION_SCAN_LIMIT)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        for row in rows:
            if row.location and row.location.get("country"):
                return ActivityRecord.from_row(row)
        return None


class BlacklistStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def find_active(
        self, entity_type: EntityType, entity_value: str, now: datetime
    ) -> BlacklistEntry | None:
        """Return any active, unexpired entry for the value, or None."""
        stmt = (
            select(BlacklistEntryDB)
            .where(
                BlacklistEntryDB.entity_type == entity_type.value,
                BlacklistEntryDB.entity_value == entity_value,
                BlacklistEntryDB.is_active.is_(True),
                or_(BlacklistEntryDB.expires_at.is_(None), BlacklistEntryDB.expires_at > now),
            )
            .limit(1)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            row = result.scalars().first()
        return BlacklistEntry.from_row(row) if row else None

    async def add(
        self,
        entity_type: EntityType,
        entity_value: str,
        reason: str,
        added_by: int,
        expires_at: datetime | None,
        now: datetime,
    ) -> BlacklistEntry:
        row = BlacklistEntryDB(
            entity_type=entity_type.value,
            entity_value=entity_value,
            reason=reason,
            added_by=added_by,
            is_active=True,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        return BlacklistEntry.from_row(row)

    async def deactivate(self, entry_id: int, now: datetime) -> BlacklistEntry:
        async with self._session_factory() as session:
            row = await session.get(BlacklistEntryDB, entry_id)
            if row is None:
                raise BlacklistEntryNotFoundError(f"Blacklist entry {entry_id} not found")
            row.is_active = False
            row.updated_at = now
            await session.commit()
        return BlacklistEntry.from_row(row)

    async def list_entries(
        self,
        now: datetime,
        entity_type: EntityType | None = None,
        active_only: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> list[BlacklistEntry]:
        stmt = select(BlacklistEntryDB)
        if entity_type:
            stmt = stmt.where(BlacklistEntryDB.entity_type == entity_type.value)
        if active_only:
            stmt = stmt.where(
                BlacklistEntryDB.is_active.is_(True),
                or_(BlacklistEntryDB.expires_at.is_(None), BlacklistEntryDB.expires_at > now),
            )
        stmt = stmt.order_by(BlacklistEntryDB.created_at.desc()).offset(offset).limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [BlacklistEntry.from_row(row) for row in result.scalars().all()]


class AlertStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def add(
        self,
        user_id: int | None,
        alert_type: AlertType,
        severity: Severity,
        description: str,
        metadata: dict,
        risk_score: int,
        now: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> FraudAlert:
        row = FraudAlertDB(
            id=str(uuid.uuid4()),
            user_id=user_id,
            alert_type=alert_type.value,
            severity=severity.value,
            description=description,
            metadata_=metadata,
            risk_score=risk_score,
            ip_address=ip_address,
            user_agent=user_agent,
            is_resolved=False,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        return FraudAlert.from_row(row)

    async def list_alerts(
        self,
        severity: Severity | None = None,
        alert_type: AlertType | None = None,
        resolved: bool | None = None,
        user_id: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[FraudAlert], int]:
        """Return a page of alerts (newest first) and the total match count."""
        stmt = select(FraudAlertDB)
        count_stmt = select(func.count()).select_from(FraudAlertDB)

        filters = []
        if severity:
            filters.append(FraudAlertDB.severity == severity.value)
        if alert_type:
            filters.append(FraudAlertDB.alert_type == alert_type.value)
        if resolved is not None:
            filters.append(FraudAlertDB.is_resolved.is_(resolved))
        if user_id is not None:
            filters.append(FraudAlertDB.user_id == user_id)
        if filters:
            stmt = stmt.where(*filters)
            count_stmt = count_stmt.where(*filters)

        stmt = stmt.order_by(FraudAlertDB.created_at.desc()).offset(offset).limit(limit)

        async with self._session_factory() as session:
            total_result = await session.execute(count_stmt)
            total = total_result.scalar_one()
            result = await session.execute(stmt)
            alerts = [FraudAlert.from_row(row) for row in result.scalars().all()]
        return alerts, total

    async def resolve(
        self, alert_id: str, resolved_by: int, resolution: str, now: datetime
    ) -> FraudAlert:
        async with self._session_factory() as session:
            row = await session.get(FraudAlertDB, alert_id)
            if row is None:
                raise AlertNotFoundError(f"Fraud alert {alert_id} not found")
            if row.is_resolved:
                raise AlertAlreadyResolvedError(f"Fraud alert {alert_id} is already resolved")
            row.is_resolved = True
            row.resolved_by = resolved_by
            row.resolution = resolution
            row.resolved_at = now
            row.updated_at = now
            await session.commit()

        logger.info("fraud_alert_resolved", alert_id=alert_id, resolved_by=resolved_by)
        return FraudAlert.from_row(row)
