"""editorial workflow schema"""

from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

revision: str = '20261019_01'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_SUBMISSION_CLAUSE = "status IN ('pending', 'under_review', 'revision_requested')"


def _id() -> sa.Column:
    return sa.Column('id', sa.UUID(as_uuid=True), primary_key=True)


def _user_fk(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        'users',
        _id(),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('username', sa.String(), unique=True),
        sa.Column('full_name', sa.String()),
        sa.Column('is_admin', sa.Boolean(), server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_digest', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('digest_frequency', sa.String(), nullable=False, server_default='daily'),
    )
    op.create_table(
        'publications',
        _id(),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text()),
        _user_fk('owner_id', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'publication_members',
        sa.Column('publication_id', sa.UUID(as_uuid=True), sa.ForeignKey('publications.id'), primary_key=True),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), primary_key=True),
        sa.Column('role', sa.String(), nullable=False, server_default='writer'),
        sa.Column('joined_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'articles',
        _id(),
        _user_fk('author_id', nullable=False),
        sa.Column('publication_id', sa.UUID(as_uuid=True), sa.ForeignKey('publications.id'), nullable=True),
        sa.Column('submission_id', sa.UUID(as_uuid=True), nullable=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('subtitle', sa.String()),
        sa.Column('content', sa.Text(), nullable=False, server_default=''),
        sa.Column('featured_image_url', sa.String()),
        sa.Column('tags', sa.JSON()),
        sa.Column('status', sa.String(), nullable=False, server_default='draft'),
        sa.Column('published_at', sa.DateTime(), nullable=True),
        sa.Column('revision_count', sa.Integer(), nullable=False, server_default='0'),
        _user_fk('last_edited_by'),
        sa.Column('last_edited_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'article_submissions',
        _id(),
        sa.Column('article_id', sa.UUID(as_uuid=True), sa.ForeignKey('articles.id'), nullable=False),
        sa.Column('publication_id', sa.UUID(as_uuid=True), sa.ForeignKey('publications.id'), nullable=False),
        _user_fk('submitted_by', nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        _user_fk('assigned_reviewer_id'),
        _user_fk('reviewed_by'),
        sa.Column('review_notes', sa.Text()),
        sa.Column('revision_notes', sa.Text()),
        sa.Column('submitted_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_article_submissions_pair', 'article_submissions', ['article_id', 'publication_id'])
    op.create_index(
        'uq_article_submissions_active_pair',
        'article_submissions',
        ['article_id', 'publication_id'],
        unique=True,
        sqlite_where=sa.text(ACTIVE_SUBMISSION_CLAUSE),
        postgresql_where=sa.text(ACTIVE_SUBMISSION_CLAUSE),
    )
    op.create_table(
        'submission_events',
        _id(),
        sa.Column('submission_id', sa.UUID(as_uuid=True), sa.ForeignKey('article_submissions.id'), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('from_status', sa.String()),
        sa.Column('to_status', sa.String()),
        _user_fk('actor_id'),
        sa.Column('notes', sa.Text()),
        sa.Column('payload', sa.JSON()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('submission_id', 'sequence', name='uq_submission_event_sequence'),
    )
    op.create_table(
        'article_revisions',
        _id(),
        sa.Column('article_id', sa.UUID(as_uuid=True), sa.ForeignKey('articles.id'), nullable=False),
        sa.Column('revision_number', sa.Integer(), nullable=False),
        sa.Column('revision_data', sa.JSON(), nullable=False),
        sa.Column('change_summary', sa.String()),
        sa.Column('is_major', sa.Boolean(), nullable=False, server_default=sa.false()),
        _user_fk('created_by', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('article_id', 'revision_number', name='uq_article_revision_number'),
    )
    op.create_table(
        'publication_templates',
        _id(),
        sa.Column('publication_id', sa.UUID(as_uuid=True), sa.ForeignKey('publications.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('template_content', sa.JSON()),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _user_fk('created_by', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'publication_guidelines',
        _id(),
        sa.Column('publication_id', sa.UUID(as_uuid=True), sa.ForeignKey('publications.id'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('category', sa.String(), nullable=False, server_default='general'),
        sa.Column('is_required', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        _user_fk('created_by', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'notifications',
        _id(),
        _user_fk('user_id'),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('message', sa.String(), nullable=False),
        sa.Column('title', sa.String()),
        sa.Column('related_id', sa.UUID(as_uuid=True)),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false()),
        sa.Column('meta', sa.JSON()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'notification_preferences',
        _id(),
        _user_fk('user_id'),
        sa.Column('pref_type', sa.String(), nullable=False),
        sa.Column('channel', sa.String(), nullable=False),
        sa.Column('enabled', sa.Boolean(), server_default=sa.true()),
        sa.UniqueConstraint('user_id', 'pref_type', 'channel'),
    )
    op.create_table(
        'audit_logs',
        _id(),
        _user_fk('user_id'),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('target_type', sa.String()),
        sa.Column('target_id', sa.UUID(as_uuid=True)),
        sa.Column('details', sa.JSON()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('notification_preferences')
    op.drop_table('notifications')
    op.drop_table('publication_guidelines')
    op.drop_table('publication_templates')
    op.drop_table('article_revisions')
    op.drop_table('submission_events')
    op.drop_index('uq_article_submissions_active_pair', table_name='article_submissions')
    op.drop_index('ix_article_submissions_pair', table_name='article_submissions')
    op.drop_table('article_submissions')
    op.drop_table('articles')
    op.drop_table('publication_members')
    op.drop_table('publications')
    op.drop_table('users')
