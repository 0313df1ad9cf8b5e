from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, JSON, ForeignKey, UniqueConstraint
from .db import Base


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username; it doubles as the user id across the catalog
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	email = Column(String(256), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Profile(Base):
	__tablename__ = "profiles"
	user_id = Column(String(128), primary_key=True, index=True)
	display_name = Column(String(256), nullable=False, default="Scholar")
	# Mutated only together with a PointLedgerRow in the same transaction
	points = Column(Integer, default=0, nullable=False)
	followers_count = Column(Integer, default=0, nullable=False)
	following_count = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class PointLedgerRow(Base):
	__tablename__ = "point_ledger"
	# Append-only; points on Profile always equals the sum of a user's rows
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(128), ForeignKey("profiles.user_id"), nullable=False, index=True)
	delta = Column(Integer, nullable=False)
	reason = Column(String(32), nullable=False)
	note_id = Column(String(32), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Note(Base):
	__tablename__ = "notes"
	id = Column(String(32), primary_key=True)
	serial_code = Column(String(16), nullable=False, index=True)
	fingerprint = Column(String(128), nullable=False, index=True)
	file_url = Column(String(1024), nullable=False)
	mime_type = Column(String(128), nullable=False)
	category = Column(String(16), nullable=False)
	title = Column(String(512), nullable=False)
	subject = Column(String(256), nullable=False)
	semester = Column(String(64), default="N/A", nullable=False)
	tags = Column(JSON, nullable=False, default=list)
	uploader_id = Column(String(128), nullable=False, index=True)
	uploader_name = Column(String(256), nullable=False)
	status = Column(String(16), default="original", nullable=False, index=True)
	quality_score = Column(Integer, nullable=False)
	quality = Column(JSON, nullable=True)
	summary = Column(JSON, nullable=True)
	flashcards = Column(JSON, nullable=True)
	quizzes = Column(JSON, nullable=True)
	processed_by = Column(String(128), nullable=True)
	uploaded_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class NoteContributor(Base):
	__tablename__ = "note_contributors"
	note_id = Column(String(32), ForeignKey("notes.id"), primary_key=True)
	user_id = Column(String(128), primary_key=True, index=True)
	position = Column(Integer, default=0, nullable=False)


class Follow(Base):
	__tablename__ = "follows"
	follower_id = Column(String(128), primary_key=True)
	followee_id = Column(String(128), primary_key=True, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Bookmark(Base):
	__tablename__ = "bookmarks"
	user_id = Column(String(128), primary_key=True)
	note_id = Column(String(32), primary_key=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	__table_args__ = (UniqueConstraint("user_id", "note_id", name="uq_bookmark_user_note"),)
