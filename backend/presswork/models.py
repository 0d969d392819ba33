import uuid
import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


ACTIVE_SUBMISSION_CLAUSE = "status IN ('pending', 'under_review', 'revision_requested')"


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    username = Column(String, unique=True)
    full_name = Column(String)
    is_admin = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=_utcnow)
    last_digest = Column(DateTime, default=_utcnow)
    digest_frequency = Column(String, default="daily", nullable=False)

    memberships = relationship("PublicationMember", back_populates="user")
    notifications = relationship(
        "Notification", back_populates="user", cascade="all, delete-orphan"
    )


class Publication(Base):
    __tablename__ = "publications"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    description = Column(Text)
    # the owner is not stored in publication_members and outranks every member
    owner_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    owner = relationship("User")
    members = relationship(
        "PublicationMember", back_populates="publication", cascade="all, delete-orphan"
    )


class PublicationMember(Base):
    __tablename__ = "publication_members"
    publication_id = Column(UUID(as_uuid=True), ForeignKey("publications.id"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), primary_key=True)
    role = Column(String, nullable=False, default="writer")  # writer, editor, admin
    joined_at = Column(DateTime, default=_utcnow)

    user = relationship("User", back_populates="memberships")
    publication = relationship("Publication", back_populates="members")


class Article(Base):
    __tablename__ = "articles"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    author_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    publication_id = Column(UUID(as_uuid=True), ForeignKey("publications.id"), nullable=True)
    submission_id = Column(UUID(as_uuid=True), nullable=True)
    title = Column(String, nullable=False)
    subtitle = Column(String)
    content = Column(Text, nullable=False, default="")
    featured_image_url = Column(String)
    tags = Column(JSON, default=list)
    status = Column(String, nullable=False, default="draft")  # draft, published, archived
    published_at = Column(DateTime, nullable=True)
    revision_count = Column(Integer, nullable=False, default=0)
    last_edited_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    last_edited_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    author = relationship("User", foreign_keys=[author_id])
    publication = relationship("Publication")


class ArticleSubmission(Base):
    __tablename__ = "article_submissions"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    article_id = Column(UUID(as_uuid=True), ForeignKey("articles.id"), nullable=False)
    publication_id = Column(UUID(as_uuid=True), ForeignKey("publications.id"), nullable=False)
    submitted_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    # purpose: lifecycle state of the article's candidacy in the publication pipeline
    # status values: pending, under_review, approved, rejected, revision_requested
    status = Column(String, nullable=False, default="pending")
    assigned_reviewer_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    reviewed_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    review_notes = Column(Text, nullable=True)
    revision_notes = Column(Text, nullable=True)
    submitted_at = Column(DateTime, default=_utcnow)
    reviewed_at = Column(DateTime, nullable=True)
    # bumped by every transition; updates compare-and-swap on it
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow)

    article = relationship("Article")
    publication = relationship("Publication")
    submitter = relationship("User", foreign_keys=[submitted_by])
    assigned_reviewer = relationship("User", foreign_keys=[assigned_reviewer_id])
    reviewer = relationship("User", foreign_keys=[reviewed_by])
    events = relationship(
        "SubmissionEvent",
        back_populates="submission",
        cascade="all, delete-orphan",
        order_by="SubmissionEvent.sequence",
    )

    __table_args__ = (
        sa.Index("ix_article_submissions_pair", "article_id", "publication_id"),
        # at most one non-terminal submission per (article, publication)
        sa.Index(
            "uq_article_submissions_active_pair",
            "article_id",
            "publication_id",
            unique=True,
            sqlite_where=sa.text(ACTIVE_SUBMISSION_CLAUSE),
            postgresql_where=sa.text(ACTIVE_SUBMISSION_CLAUSE),
        ),
    )

    @property
    def article_title(self) -> str | None:
        return self.article.title if self.article is not None else None

    @property
    def publication_name(self) -> str | None:
        return self.publication.name if self.publication is not None else None


class SubmissionEvent(Base):
    __tablename__ = "submission_events"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submission_id = Column(UUID(as_uuid=True), ForeignKey("article_submissions.id"), nullable=False)
    sequence = Column(Integer, nullable=False)
    event_type = Column(String, nullable=False)
    from_status = Column(String, nullable=True)
    to_status = Column(String, nullable=True)
    actor_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    notes = Column(Text, nullable=True)
    payload = Column(JSON, default=dict)
    created_at = Column(DateTime, default=_utcnow)

    submission = relationship("ArticleSubmission", back_populates="events")
    actor = relationship("User")

    __table_args__ = (
        sa.UniqueConstraint("submission_id", "sequence", name="uq_submission_event_sequence"),
    )


class ArticleRevision(Base):
    __tablename__ = "article_revisions"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    article_id = Column(UUID(as_uuid=True), ForeignKey("articles.id"), nullable=False)
    revision_number = Column(Integer, nullable=False)
    # snapshot keys: title, subtitle, content, featured_image_url, tags
    revision_data = Column(JSON, nullable=False, default=dict)
    change_summary = Column(String, nullable=True)
    is_major = Column(Boolean, nullable=False, default=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=_utcnow)

    creator = relationship("User")

    __table_args__ = (
        sa.UniqueConstraint("article_id", "revision_number", name="uq_article_revision_number"),
    )


class PublicationTemplate(Base):
    __tablename__ = "publication_templates"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    publication_id = Column(UUID(as_uuid=True), ForeignKey("publications.id"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text)
    template_content = Column(JSON, default=dict)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class PublicationGuideline(Base):
    __tablename__ = "publication_guidelines"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    publication_id = Column(UUID(as_uuid=True), ForeignKey("publications.id"), nullable=False)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    category = Column(String, nullable=False, default="general")
    is_required = Column(Boolean, nullable=False, default=False)
    display_order = Column(Integer, nullable=False, default=0)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    type = Column(String, nullable=False)  # submission_received, review_assigned, submission_approved, ...
    message = Column(String, nullable=False)
    title = Column(String, nullable=True)
    related_id = Column(UUID(as_uuid=True), nullable=True)
    is_read = Column(Boolean, default=False)
    meta = Column(JSON, default=dict)
    created_at = Column(DateTime, default=_utcnow)
    user = relationship("User", back_populates="notifications")

    @property
    def action_url(self) -> str | None:
        meta = self.meta or {}
        return meta.get("action_url")


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "pref_type", "channel"),
    )
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    pref_type = Column(String, nullable=False)
    channel = Column(String, nullable=False)
    enabled = Column(Boolean, default=True)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(UUID(as_uuid=True))
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, default=_utcnow)
