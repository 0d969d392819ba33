from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, audit
from ..rbac import PublicationRole, effective_role, require_permission
from ..responses import PageParams, page_params, pagination, success

router = APIRouter(prefix="/api/publications", tags=["publications"])


def _get_publication(db: Session, publication_id: UUID) -> models.Publication:
    publication = db.get(models.Publication, publication_id)
    if publication is None:
        raise HTTPException(status_code=404, detail="Publication not found")
    return publication


def _get_member(db: Session, publication_id: UUID, user_id: UUID) -> models.PublicationMember:
    member = db.get(models.PublicationMember, (publication_id, user_id))
    if member is None:
        raise HTTPException(status_code=404, detail="Member not found")
    return member


def _require_role_grant(
    db: Session, user: models.User, publication_id: UUID, role: str
) -> None:
    # admins manage writers and editors; only the owner hands out admin
    needed = PublicationRole.OWNER if role == "admin" else PublicationRole.ADMIN
    require_permission(db, user, publication_id, needed)


def _publication_out(db: Session, publication: models.Publication, user: models.User) -> dict:
    role = effective_role(db, publication.id, user.id)
    data = schemas.PublicationOut.model_validate(publication).model_dump()
    data["role"] = role.label if role is not None else None
    data["member_count"] = len(publication.members)
    return data


@router.post("/", status_code=201)
async def create_publication(
    payload: schemas.PublicationCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    publication = models.Publication(
        name=payload.name,
        description=payload.description,
        owner_id=user.id,
    )
    db.add(publication)
    db.flush()
    audit.log_action(db, user.id, "publication.created", "publication", publication.id)
    db.commit()
    db.refresh(publication)
    return success(_publication_out(db, publication, user), "Publication created successfully")


@router.get("/")
async def list_my_publications(
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    member_of = db.query(models.PublicationMember.publication_id).filter(
        models.PublicationMember.user_id == user.id
    )
    query = (
        db.query(models.Publication)
        .filter(
            or_(
                models.Publication.owner_id == user.id,
                models.Publication.id.in_(member_of),
            )
        )
        .order_by(models.Publication.created_at.desc())
    )
    total = query.count()
    items = query.offset(params.offset).limit(params.limit).all()
    return success(
        [_publication_out(db, p, user) for p in items],
        pagination=pagination(total, params),
    )


@router.get("/{publication_id}")
async def get_publication(
    publication_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    publication = _get_publication(db, publication_id)
    return success(_publication_out(db, publication, user))


@router.get("/{publication_id}/members")
async def list_members(
    publication_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    publication = _get_publication(db, publication_id)
    require_permission(db, user, publication_id, PublicationRole.WRITER)
    members = [
        schemas.PublicationMemberOut.model_validate(m)
        for m in sorted(publication.members, key=lambda m: m.joined_at or publication.created_at)
    ]
    return success({
        "owner": schemas.UserOut.model_validate(publication.owner),
        "members": members,
    })


@router.post("/{publication_id}/members", status_code=201)
async def add_member(
    publication_id: UUID,
    payload: schemas.PublicationMemberAdd,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    publication = _get_publication(db, publication_id)
    _require_role_grant(db, user, publication_id, payload.role)
    if payload.user_id is not None:
        target = db.get(models.User, payload.user_id)
    elif payload.email is not None:
        target = db.query(models.User).filter(models.User.email == payload.email).first()
    else:
        raise HTTPException(status_code=400, detail="user_id or email is required")
    if target is None:
        raise HTTPException(status_code=404, detail="User not found")
    if target.id == publication.owner_id:
        raise HTTPException(status_code=400, detail="The owner cannot be added as a member")
    if db.get(models.PublicationMember, (publication_id, target.id)) is not None:
        raise HTTPException(status_code=400, detail="User is already a member of this publication")
    member = models.PublicationMember(
        publication_id=publication_id, user_id=target.id, role=payload.role
    )
    db.add(member)
    audit.log_action(
        db, user.id, "publication.member_added", "publication", publication_id,
        {"user_id": str(target.id), "role": payload.role},
    )
    db.commit()
    db.refresh(member)
    return success(schemas.PublicationMemberOut.model_validate(member), "Member added successfully")


@router.put("/{publication_id}/members/{user_id}")
async def change_member_role(
    publication_id: UUID,
    user_id: UUID,
    payload: schemas.PublicationMemberUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    _get_publication(db, publication_id)
    member = _get_member(db, publication_id, user_id)
    _require_role_grant(db, user, publication_id, payload.role)
    if member.role == "admin":
        require_permission(db, user, publication_id, PublicationRole.OWNER)
    previous = member.role
    member.role = payload.role
    audit.log_action(
        db, user.id, "publication.member_role_changed", "publication", publication_id,
        {"user_id": str(user_id), "from": previous, "to": payload.role},
    )
    db.commit()
    db.refresh(member)
    return success(schemas.PublicationMemberOut.model_validate(member), "Member role updated")


@router.delete("/{publication_id}/members/{user_id}")
async def remove_member(
    publication_id: UUID,
    user_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    _get_publication(db, publication_id)
    member = _get_member(db, publication_id, user_id)
    if user_id != user.id:
        require_permission(db, user, publication_id, PublicationRole.ADMIN)
        if member.role == "admin":
            require_permission(db, user, publication_id, PublicationRole.OWNER)
    audit.log_action(
        db, user.id, "publication.member_removed", "publication", publication_id,
        {"user_id": str(user_id)},
    )
    db.delete(member)
    db.commit()
    return success(message="Member removed successfully")
