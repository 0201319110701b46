"""
SQLAlchemy ORM models for database tables.

This module contains the table definitions used to create the schema.
Queries against these tables go through Store in storage.py.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Boolean, Column, Index, Integer, String, Text

from app.storage import Base


class Contact(Base):
    """
    Contact form submission.

    Table: contacts
    status is 'unread' until an admin marks it read.
    """
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(String, nullable=False)  # ISO-8601 UTC
    status = Column(String, nullable=False, default="unread", server_default="unread")
    ip_address = Column(String, nullable=True)
    user_agent = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_contacts_status", "status"),
        Index("idx_contacts_created", "created_at"),
        {"sqlite_autoincrement": True},
    )


class DownloadLog(Base):
    """Append-only log of resume downloads."""
    __tablename__ = "download_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(Text, nullable=True)
    downloaded_at = Column(String, nullable=False)  # ISO-8601 UTC
    file_name = Column(String, nullable=False, default="resume.pdf", server_default="resume.pdf")

    __table_args__ = (
        Index("idx_downloads_date", "downloaded_at"),
        {"sqlite_autoincrement": True},
    )


class AdminSessionRecord(Base):
    """
    Server-side admin session keyed by an opaque token.

    Table: admin_sessions
    user_id holds the admin username; created_at doubles as the login time.
    """
    __tablename__ = "admin_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String, unique=True, nullable=False)
    user_id = Column(String, nullable=False)
    created_at = Column(String, nullable=False)
    expires_at = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")

    __table_args__ = (
        Index("idx_sessions_active", "is_active"),
        {"sqlite_autoincrement": True},
    )


class SiteStats(Base):
    """
    Site counters. Singleton table: exactly one row with id=1.
    """
    __tablename__ = "site_stats"

    id = Column(Integer, primary_key=True)
    page_views = Column(Integer, nullable=False, default=0, server_default="0")
    unique_visitors = Column(Integer, nullable=False, default=0, server_default="0")
    total_contacts = Column(Integer, nullable=False, default=0, server_default="0")
    total_downloads = Column(Integer, nullable=False, default=0, server_default="0")
    last_updated = Column(String, nullable=True)
