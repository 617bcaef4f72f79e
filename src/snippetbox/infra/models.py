# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from sqlalchemy import Column, DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)  # stored lower-cased
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False)  # UTC, naive


class SnippetRow(Base):
    __tablename__ = "snippets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(100), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (Index("idx_snippets_created", "created_at"),)


class SessionRow(Base):
    __tablename__ = "sessions"

    token = Column(String(64), primary_key=True)
    data = Column(JSON, nullable=False)
    expiry = Column(DateTime, nullable=False, index=True)
