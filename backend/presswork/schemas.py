from datetime import datetime
from typing import Optional, Any, Dict, Literal, List
from pydantic import BaseModel, EmailStr, ConfigDict, Field
from uuid import UUID


MemberRole = Literal["writer", "editor", "admin"]
SubmissionStatusValue = Literal[
    "pending", "under_review", "approved", "rejected", "revision_requested"
]
GuidelineCategory = Literal[
    "writing_style", "content_policy", "submission_process", "formatting", "general"
]


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    username: Optional[str] = None
    full_name: Optional[str] = None


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    username: Optional[str] = None
    full_name: Optional[str] = None
    is_admin: bool = False
    model_config = ConfigDict(from_attributes=True)


class UserUpdate(BaseModel):
    username: Optional[str] = Field(default=None, min_length=1)
    full_name: Optional[str] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Pagination(BaseModel):
    current_page: int
    per_page: int
    total_items: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PublicationCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class PublicationOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    owner_id: UUID
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class PublicationMemberAdd(BaseModel):
    user_id: Optional[UUID] = None
    email: Optional[EmailStr] = None
    role: MemberRole = "writer"


class PublicationMemberUpdate(BaseModel):
    role: MemberRole


class PublicationMemberOut(BaseModel):
    user: UserOut
    role: str
    joined_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ArticleCreate(BaseModel):
    title: str = Field(min_length=1)
    subtitle: Optional[str] = None
    content: str = ""
    featured_image_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class ArticleUpdate(BaseModel):
    title: Optional[str] = None
    subtitle: Optional[str] = None
    content: Optional[str] = None
    featured_image_url: Optional[str] = None
    tags: Optional[List[str]] = None


class ArticleOut(BaseModel):
    id: UUID
    author_id: UUID
    publication_id: Optional[UUID] = None
    submission_id: Optional[UUID] = None
    title: str
    subtitle: Optional[str] = None
    content: str
    featured_image_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    status: str
    published_at: Optional[datetime] = None
    revision_count: int = 0
    last_edited_by: Optional[UUID] = None
    last_edited_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class SubmitArticleRequest(BaseModel):
    article_id: UUID
    publication_id: UUID


class AssignReviewerRequest(BaseModel):
    submission_id: UUID
    reviewer_id: UUID


class SubmissionRef(BaseModel):
    submission_id: UUID


class ReviewDecisionRequest(BaseModel):
    submission_id: UUID
    review_notes: Optional[str] = None


class RevisionRequestIn(BaseModel):
    submission_id: UUID
    revision_notes: Optional[str] = None


class SubmissionOut(BaseModel):
    id: UUID
    article_id: UUID
    publication_id: UUID
    submitted_by: UUID
    status: SubmissionStatusValue
    assigned_reviewer_id: Optional[UUID] = None
    reviewed_by: Optional[UUID] = None
    review_notes: Optional[str] = None
    revision_notes: Optional[str] = None
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    version: int
    article_title: Optional[str] = None
    publication_name: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class SubmissionEventOut(BaseModel):
    id: UUID
    sequence: int
    event_type: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    actor_id: Optional[UUID] = None
    notes: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class SubmissionStats(BaseModel):
    total_submissions: int = 0
    pending: int = 0
    under_review: int = 0
    approved: int = 0
    rejected: int = 0
    revision_requested: int = 0
    avg_review_time_hours: Optional[float] = None


class RevisionSnapshot(BaseModel):
    title: str = Field(min_length=1)
    subtitle: Optional[str] = None
    content: str
    featured_image_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class RevisionCreate(BaseModel):
    article_id: UUID
    revision_data: RevisionSnapshot
    change_summary: Optional[str] = None
    is_major: bool = False


class RevisionOut(BaseModel):
    id: UUID
    article_id: UUID
    revision_number: int
    revision_data: Dict[str, Any]
    change_summary: Optional[str] = None
    is_major: bool
    created_by: UUID
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class RestoreRevisionRequest(BaseModel):
    article_id: UUID
    revision_number: int = Field(ge=1)


class TemplateCreate(BaseModel):
    publication_id: UUID
    name: str = Field(min_length=1)
    description: Optional[str] = None
    template_content: Dict[str, Any] = Field(default_factory=dict)
    is_default: bool = False
    is_active: bool = True


class TemplateUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    template_content: Optional[Dict[str, Any]] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None


class TemplateOut(BaseModel):
    id: UUID
    publication_id: UUID
    name: str
    description: Optional[str] = None
    template_content: Dict[str, Any] = Field(default_factory=dict)
    is_default: bool
    is_active: bool
    created_by: UUID
    created_at: datetime
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class TemplateApplyRequest(BaseModel):
    article_data: Dict[str, Any] = Field(default_factory=dict)


class TemplateDuplicateRequest(BaseModel):
    name: str = Field(min_length=1)


class GuidelineCreate(BaseModel):
    publication_id: UUID
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    category: GuidelineCategory = "general"
    is_required: bool = False
    display_order: int = 0


class GuidelineUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    category: Optional[GuidelineCategory] = None
    is_required: Optional[bool] = None
    display_order: Optional[int] = None


class GuidelineOut(BaseModel):
    id: UUID
    publication_id: UUID
    title: str
    content: str
    category: str
    is_required: bool
    display_order: int
    created_by: UUID
    created_at: datetime
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class GuidelineOrder(BaseModel):
    id: UUID
    display_order: int


class GuidelineReorderRequest(BaseModel):
    publication_id: UUID
    guidelines: List[GuidelineOrder] = Field(min_length=1)


class PublicationRef(BaseModel):
    publication_id: UUID


class ComplianceCheckRequest(BaseModel):
    publication_id: UUID
    article_data: Dict[str, Any]


class NotificationOut(BaseModel):
    id: UUID
    user_id: UUID
    type: str
    message: str
    title: Optional[str] = None
    related_id: Optional[UUID] = None
    is_read: bool
    meta: Dict[str, Any] = Field(default_factory=dict)
    action_url: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class NotificationPreferenceUpdate(BaseModel):
    enabled: bool


class NotificationPreferenceOut(BaseModel):
    id: UUID
    user_id: UUID
    pref_type: str
    channel: str
    enabled: bool
    model_config = ConfigDict(from_attributes=True)


class NotificationSettingsOut(BaseModel):
    digest_frequency: Literal["daily", "never"]
    last_digest: Optional[datetime] = None


class NotificationSettingsUpdate(BaseModel):
    digest_frequency: Literal["daily", "never"]
