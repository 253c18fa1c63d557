"""Test configuration and fixtures."""

import os
import sys
import unittest
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.dirname(os.path.dirname(__file__))))

from ar_aging.db.models import Base

# One in-memory SQLite database shared by every connection
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


def setup_test_db():
    """Create all tables in the test database."""
    Base.metadata.create_all(bind=test_engine)


def teardown_test_db():
    """Drop all tables from the test database."""
    Base.metadata.drop_all(bind=test_engine)


@contextmanager
def db_session_scope():
    """Transactional scope on the test engine, mirroring get_db_session."""
    session = TestSessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class BaseTestCase(unittest.TestCase):
    """Base test case with a fresh schema per test."""

    def setUp(self):
        """Create the tables and open a session."""
        setup_test_db()
        self.db = TestSessionLocal()

    def tearDown(self):
        """Close the session and drop the tables."""
        self.db.close()
        teardown_test_db()
