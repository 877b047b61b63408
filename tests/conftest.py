"""
Shared pytest fixtures.
"""

import itertools
import logging
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from inbox_courier.core.config import AppConfig
from inbox_courier.core.database import Base, DatabaseManager


@pytest.fixture
def test_db():
    """Create temporary in-memory database for testing."""
    # One shared connection, usable from executor threads
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    # Create DatabaseManager manually without calling __init__
    db = object.__new__(DatabaseManager)
    db.logger = logging.getLogger(__name__)
    db.connection_string = "sqlite:///:memory:"
    db.engine = engine
    db.SessionLocal = Session

    yield db

    Base.metadata.drop_all(engine)


@pytest.fixture
def app_config():
    return AppConfig(base_url="https://courier.example.com")


@pytest.fixture
def mock_telegram():
    """Mock TelegramBotClient; send_message returns increasing message ids."""
    client = Mock()
    counter = itertools.count(500)
    client.send_message = Mock(side_effect=lambda *args, **kwargs: next(counter))
    client.edit_message_text = Mock(return_value=None)
    client.answer_callback_query = Mock(return_value=None)
    client.is_configured = True
    return client


@pytest.fixture
def mock_mailbox():
    """Mock MailboxClient."""
    mailbox = Mock()
    mailbox.count_thread_messages = Mock(return_value=1)
    mailbox.send_reply = Mock(return_value=None)
    return mailbox
