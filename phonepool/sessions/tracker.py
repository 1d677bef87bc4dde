"""
Session Lifecycle Tracker
=========================

Opens, starts, completes and cancels rental sessions.

A session is created ``pending`` and becomes ``active`` only by binding a
device in one guarded step, so two sessions can never hold the same phone
at once. Expiry is read from the clock, never written.

Usage:
    tracker = SessionTracker(repo)
    session = await tracker.open(customer, subscription, device)
    session = await tracker.start(session)
    ...
    await tracker.complete(session)
"""

from datetime import datetime
from typing import Optional

from phonepool.domain.models import (
    Customer,
    Device,
    RentalSession,
    SessionStatus,
    Subscription,
    utcnow,
)
from phonepool.storage.repository import Repository
from phonepool.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SESSION_MINUTES = 5


class SessionTracker:
    """Drives :class:`RentalSession` records through their lifecycle."""

    def __init__(self, repository: Repository) -> None:
        self.repository = repository

    async def open(
        self,
        customer: Customer,
        subscription: Subscription,
        device: Device,
        duration_minutes: int = DEFAULT_SESSION_MINUTES,
    ) -> RentalSession:
        """Create a pending session and count it against the customer."""
        session = await self.repository.add_session(
            RentalSession(
                customer_id=customer.id,
                device_id=device.id,
                subscription_id=subscription.id,
                duration_minutes=duration_minutes,
            )
        )
        await self.repository.increment_customer_sessions(customer.id)
        logger.info(
            "Session opened",
            session_id=session.id,
            customer_id=customer.id,
            device_id=device.id,
            duration_minutes=duration_minutes,
        )
        return session

    async def start(self, session: RentalSession) -> Optional[RentalSession]:
        """
        Bind the session's device and activate the session.

        Returns:
            The active session, or None if another live session holds the
            device (the session stays pending).
        """
        started_at, expires_at = session.window(utcnow())
        started = await self.repository.acquire_device_for_session(
            session.device_id,
            session.id,
            started_at,
            expires_at,
        )
        if started is None:
            logger.warning("Session could not start", session_id=session.id, device_id=session.device_id)
            return None
        logger.info("Session started", session_id=session.id, expires_at=expires_at)
        return started

    async def complete(self, session: RentalSession) -> Optional[RentalSession]:
        """Mark an active session completed. Leaves the device alone."""
        completed = await self.repository.transition_session(
            session.id,
            {SessionStatus.ACTIVE},
            SessionStatus.COMPLETED,
            completed_at=utcnow(),
        )
        if completed is not None:
            logger.info("Session completed", session_id=session.id)
        return completed

    async def cancel(self, session: RentalSession) -> Optional[RentalSession]:
        """Cancel a pending or active session."""
        cancelled = await self.repository.transition_session(
            session.id,
            {SessionStatus.PENDING, SessionStatus.ACTIVE},
            SessionStatus.CANCELLED,
            completed_at=utcnow(),
        )
        if cancelled is not None:
            logger.info("Session cancelled", session_id=session.id)
        return cancelled

    @staticmethod
    def is_expired(session: RentalSession, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return (
            session.status == SessionStatus.ACTIVE
            and session.expires_at is not None
            and session.expires_at <= now
        )
