"""
Database models and management for Inbox Courier.

This module contains the SQLAlchemy models, the validated record types that
callers receive instead of raw rows, and the DatabaseManager class for
database operations.

Every expiring table carries an ``expires_at`` column. Reads treat rows whose
``expires_at`` has passed as absent; ``DatabaseManager.purge_expired`` deletes
them.
"""

from sqlalchemy import (
    create_engine,
    text,
    Column,
    Integer,
    BigInteger,
    String,
    Text,
    DateTime,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, List, Dict
import logging
import uuid

from .exceptions import DatabaseError

Base = declarative_base()


def utc_now() -> datetime:
    """Naive UTC timestamp (all DateTime columns store naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================================
# MAIL NOTIFICATIONS
# ============================================================================


class ProcessedMailNotification(Base):
    """
    Dedup marker for Microsoft Graph mail change notifications.

    The primary key insert is the idempotency gate: a second insert for the
    same resource id fails with IntegrityError, meaning "already handled".
    """

    __tablename__ = "processed_mail_notifications"

    resource_id = Column(String(500), primary_key=True)
    processed_at = Column(DateTime, default=utc_now, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<ProcessedMailNotification(id='{self.resource_id[:20]}...')>"


class EmailView(Base):
    """Rendered summary/full text of one notified email, addressed from chat buttons."""

    __tablename__ = "email_views"

    id = Column(String(32), primary_key=True)  # uuid4 hex
    summary_text = Column(Text, nullable=False)
    full_text = Column(Text, nullable=False)
    sender_name = Column(String(500))
    source_message_id = Column(String(500), nullable=False)
    created_at = Column(DateTime, default=utc_now)
    expires_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<EmailView(id='{self.id}', sender='{self.sender_name}')>"


# ============================================================================
# TELEGRAM BOT STATE
# ============================================================================


class ReplySession(Base):
    """In-progress reply composition for one chat (at most one per chat)."""

    __tablename__ = "reply_sessions"

    chat_id = Column(BigInteger, primary_key=True, autoincrement=False)
    view_id = Column(String(32), nullable=False)
    mode = Column(String(30), nullable=False)  # awaiting_reply, awaiting_edit_feedback, awaiting_send_edit
    draft = Column(Text, default="")
    anchor_message_id = Column(BigInteger)  # Chat message edited in place
    updated_at = Column(DateTime, default=utc_now)
    expires_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<ReplySession(chat_id={self.chat_id}, mode='{self.mode}', view='{self.view_id}')>"


class TelegramSubscriber(Base):
    """
    Registered notification recipient.

    Slots are numbered 0..max_subscribers-1; the slot primary key makes the
    capacity check and the insert a single atomic step.
    """

    __tablename__ = "telegram_subscribers"

    slot = Column(Integer, primary_key=True, autoincrement=False)
    chat_id = Column(BigInteger, unique=True, nullable=False)
    registered_at = Column(DateTime, default=utc_now)

    def __repr__(self):
        return f"<TelegramSubscriber(slot={self.slot}, chat_id={self.chat_id})>"


class MailSubscription(Base):
    """Graph change-notification subscription metadata (no expiry)."""

    __tablename__ = "mail_subscriptions"

    key = Column(String(50), primary_key=True)
    subscription_id = Column(String(255), nullable=False)
    resource = Column(String(500))
    expiration_datetime = Column(DateTime)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<MailSubscription(key='{self.key}', id='{self.subscription_id}')>"


# ============================================================================
# VALIDATED RECORDS
# ============================================================================


class ReplyMode(str, Enum):
    """Reply session modes."""

    AWAITING_REPLY = "awaiting_reply"
    AWAITING_EDIT_FEEDBACK = "awaiting_edit_feedback"
    AWAITING_SEND_EDIT = "awaiting_send_edit"


@dataclass(frozen=True)
class EmailViewRecord:
    id: str
    summary_text: str
    full_text: str
    sender_name: str
    source_message_id: str

    @classmethod
    def from_row(cls, row: EmailView) -> Optional["EmailViewRecord"]:
        """Convert a row, or return None if a required field is missing."""
        if not row.id or not row.source_message_id or row.summary_text is None or row.full_text is None:
            return None
        return cls(
            id=row.id,
            summary_text=row.summary_text,
            full_text=row.full_text,
            sender_name=row.sender_name or "Unknown",
            source_message_id=row.source_message_id,
        )


@dataclass(frozen=True)
class ReplySessionRecord:
    chat_id: int
    view_id: str
    mode: ReplyMode
    draft: str = ""
    anchor_message_id: Optional[int] = None

    @classmethod
    def from_row(cls, row: ReplySession) -> Optional["ReplySessionRecord"]:
        """Convert a row, or return None for an unknown mode or missing view id."""
        if not row.view_id:
            return None
        try:
            mode = ReplyMode(row.mode)
        except ValueError:
            return None
        return cls(
            chat_id=row.chat_id,
            view_id=row.view_id,
            mode=mode,
            draft=row.draft or "",
            anchor_message_id=row.anchor_message_id,
        )


# ============================================================================
# DATABASE MANAGER
# ============================================================================


class DatabaseManager:
    """Database operations manager."""

    def __init__(self, connection_string: str):
        """Initialize database manager with connection string."""
        self.logger = logging.getLogger(__name__)
        self.connection_string = connection_string

        if connection_string.startswith("sqlite"):
            # SQLite (dev/test) has no pool sizing; share one connection for in-memory databases
            engine_kwargs = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in connection_string:
                engine_kwargs["poolclass"] = StaticPool
            self.engine = create_engine(connection_string, echo=False, **engine_kwargs)
        else:
            self.engine = create_engine(
                connection_string,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,  # Verify connections before using
                echo=False,
            )

        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def create_tables(self):
        """Create all database tables."""
        Base.metadata.create_all(self.engine)
        self.logger.info("Database tables created successfully")

    def drop_tables(self):
        """Drop all database tables (use with caution!)."""
        Base.metadata.drop_all(self.engine)
        self.logger.warning("All database tables dropped")

    def get_session(self):
        """Get a new database session."""
        return self.SessionLocal()

    def check_connection(self) -> bool:
        """Run a trivial query; raises on connection failure."""
        session = self.get_session()
        try:
            session.execute(text("SELECT 1"))
            return True
        finally:
            session.close()

    # ========================================================================
    # DEDUP MARKER METHODS
    # ========================================================================

    def try_mark_processed(self, resource_id: str, ttl_days: int = 30) -> bool:
        """
        Atomically record a mail notification as processed.

        Args:
            resource_id: Graph message id from the notification
            ttl_days: Marker lifetime

        Returns:
            True if this call created the marker (first sighting),
            False if a marker already existed

        Raises:
            DatabaseError: Storage failed for any other reason
        """
        session = self.get_session()
        try:
            now = utc_now()
            session.add(
                ProcessedMailNotification(
                    resource_id=resource_id,
                    processed_at=now,
                    expires_at=now + timedelta(days=ttl_days),
                )
            )
            session.commit()
            return True
        except IntegrityError:
            session.rollback()
            return False
        except SQLAlchemyError as e:
            session.rollback()
            raise DatabaseError(f"Failed to record processed notification {resource_id}: {e}") from e
        finally:
            session.close()

    # ========================================================================
    # EMAIL VIEW METHODS
    # ========================================================================

    def create_email_view(
        self,
        summary_text: str,
        full_text: str,
        sender_name: str,
        source_message_id: str,
        ttl_hours: int = 24,
    ) -> str:
        """
        Persist a new email view.

        Returns:
            Generated view id (uuid4 hex)

        Raises:
            DatabaseError: If the write fails
        """
        session = self.get_session()
        try:
            now = utc_now()
            view_id = uuid.uuid4().hex
            session.add(
                EmailView(
                    id=view_id,
                    summary_text=summary_text,
                    full_text=full_text,
                    sender_name=sender_name,
                    source_message_id=source_message_id,
                    created_at=now,
                    expires_at=now + timedelta(hours=ttl_hours),
                )
            )
            session.commit()
            self.logger.debug(f"Created email view {view_id} for message {source_message_id[:20]}...")
            return view_id
        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error(f"Failed to create email view: {e}")
            raise DatabaseError(f"Failed to create email view: {e}") from e
        finally:
            session.close()

    def get_email_view(self, view_id: str) -> Optional[EmailViewRecord]:
        """Find a live (unexpired) email view; storage errors read as absent."""
        session = self.get_session()
        try:
            row = (
                session.query(EmailView)
                .filter(EmailView.id == view_id, EmailView.expires_at > utc_now())
                .first()
            )
            return EmailViewRecord.from_row(row) if row else None
        except SQLAlchemyError as e:
            self.logger.warning(f"Email view lookup failed for {view_id}: {e}")
            return None
        finally:
            session.close()

    # ========================================================================
    # REPLY SESSION METHODS
    # ========================================================================

    def get_reply_session(self, chat_id: int) -> Optional[ReplySessionRecord]:
        """Find the live reply session for a chat; storage errors read as absent."""
        session = self.get_session()
        try:
            row = (
                session.query(ReplySession)
                .filter(ReplySession.chat_id == chat_id, ReplySession.expires_at > utc_now())
                .first()
            )
            if not row:
                return None
            record = ReplySessionRecord.from_row(row)
            if record is None:
                self.logger.warning(f"Ignoring malformed reply session for chat {chat_id}: {row!r}")
            return record
        except SQLAlchemyError as e:
            self.logger.warning(f"Reply session lookup failed for chat {chat_id}: {e}")
            return None
        finally:
            session.close()

    def save_reply_session(
        self,
        chat_id: int,
        view_id: str,
        mode: ReplyMode,
        draft: str = "",
        anchor_message_id: Optional[int] = None,
        ttl_hours: int = 2,
    ) -> ReplySessionRecord:
        """
        Create or replace the reply session for a chat (last writer wins).

        Every save refreshes the inactivity expiry.

        Raises:
            DatabaseError: If the write fails
        """
        session = self.get_session()
        try:
            now = utc_now()
            session.merge(
                ReplySession(
                    chat_id=chat_id,
                    view_id=view_id,
                    mode=ReplyMode(mode).value,
                    draft=draft,
                    anchor_message_id=anchor_message_id,
                    updated_at=now,
                    expires_at=now + timedelta(hours=ttl_hours),
                )
            )
            session.commit()
            return ReplySessionRecord(
                chat_id=chat_id,
                view_id=view_id,
                mode=ReplyMode(mode),
                draft=draft,
                anchor_message_id=anchor_message_id,
            )
        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error(f"Failed to save reply session for chat {chat_id}: {e}")
            raise DatabaseError(f"Failed to save reply session: {e}") from e
        finally:
            session.close()

    def delete_reply_session(self, chat_id: int) -> bool:
        """Delete the reply session for a chat. Returns True if a row was removed."""
        session = self.get_session()
        try:
            deleted = session.query(ReplySession).filter(ReplySession.chat_id == chat_id).delete()
            session.commit()
            return deleted > 0
        except SQLAlchemyError as e:
            session.rollback()
            self.logger.warning(f"Failed to delete reply session for chat {chat_id}: {e}")
            return False
        finally:
            session.close()

    # ========================================================================
    # SUBSCRIBER METHODS
    # ========================================================================

    def get_subscriber_chat_ids(self) -> List[int]:
        """Registered chat ids in slot order."""
        session = self.get_session()
        try:
            rows = session.query(TelegramSubscriber).order_by(TelegramSubscriber.slot).all()
            return [row.chat_id for row in rows]
        finally:
            session.close()

    def is_subscriber(self, chat_id: int) -> bool:
        session = self.get_session()
        try:
            return session.query(TelegramSubscriber).filter(TelegramSubscriber.chat_id == chat_id).count() > 0
        finally:
            session.close()

    def claim_subscriber_slot(self, chat_id: int, max_subscribers: int) -> Optional[int]:
        """
        Register a chat in the first free slot.

        Each attempt is a single insert, so two chats racing for the last slot
        cannot both succeed.

        Returns:
            Slot number held by the chat, or None if every slot is taken
        """
        for slot in range(max_subscribers):
            session = self.get_session()
            try:
                if session.query(TelegramSubscriber).filter(TelegramSubscriber.slot == slot).count():
                    continue
                session.add(TelegramSubscriber(slot=slot, chat_id=chat_id, registered_at=utc_now()))
                session.commit()
                self.logger.info(f"Registered Telegram subscriber {chat_id} in slot {slot}")
                return slot
            except IntegrityError:
                session.rollback()
                existing = (
                    session.query(TelegramSubscriber).filter(TelegramSubscriber.chat_id == chat_id).first()
                )
                if existing:
                    return existing.slot
                # Slot taken concurrently, try the next one
            finally:
                session.close()
        return None

    # ========================================================================
    # MAIL SUBSCRIPTION METHODS
    # ========================================================================

    def get_mail_subscription(self, key: str = "mail_inbox") -> Optional[MailSubscription]:
        """Get stored Graph subscription metadata."""
        session = self.get_session()
        try:
            return session.query(MailSubscription).filter(MailSubscription.key == key).first()
        finally:
            session.close()

    def save_mail_subscription(
        self,
        subscription_id: str,
        resource: str,
        expiration_datetime: datetime,
        key: str = "mail_inbox",
    ):
        """Create or update stored Graph subscription metadata."""
        session = self.get_session()
        try:
            session.merge(
                MailSubscription(
                    key=key,
                    subscription_id=subscription_id,
                    resource=resource,
                    expiration_datetime=expiration_datetime,
                    updated_at=utc_now(),
                )
            )
            session.commit()
            self.logger.info(f"Saved mail subscription {subscription_id} (expires {expiration_datetime})")
        except Exception as e:
            session.rollback()
            self.logger.error(f"Failed to save mail subscription: {e}")
            raise
        finally:
            session.close()

    def delete_mail_subscription(self, key: str = "mail_inbox") -> bool:
        session = self.get_session()
        try:
            deleted = session.query(MailSubscription).filter(MailSubscription.key == key).delete()
            session.commit()
            return deleted > 0
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # HOUSEKEEPING
    # ========================================================================

    def purge_expired(self) -> Dict[str, int]:
        """
        Delete expired markers, views and sessions.

        Returns:
            Dict of table name -> rows deleted
        """
        session = self.get_session()
        stats = {}
        try:
            now = utc_now()
            for model in (ProcessedMailNotification, EmailView, ReplySession):
                stats[model.__tablename__] = (
                    session.query(model).filter(model.expires_at <= now).delete(synchronize_session=False)
                )
            session.commit()
            if any(stats.values()):
                self.logger.info(f"Purged expired rows: {stats}")
            return stats
        except Exception as e:
            session.rollback()
            self.logger.error(f"Failed to purge expired rows: {e}")
            raise
        finally:
            session.close()


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

_db_manager_instance: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """
    Get or create a shared DatabaseManager instance.

    Uses the connection string from the application config.

    Returns:
        DatabaseManager instance
    """
    global _db_manager_instance

    if _db_manager_instance is None:
        from .config import get_config
        config = get_config()
        _db_manager_instance = DatabaseManager(config.database.connection_string)

    return _db_manager_instance
