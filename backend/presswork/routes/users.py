from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from .. import models, schemas, auth

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=schemas.UserOut)
async def read_profile(current_user: models.User = Depends(auth.get_current_user)):
    return current_user


@router.put("/me", response_model=schemas.UserOut)
async def update_profile(
    update: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    if update.username is not None and update.username != current_user.username:
        taken = db.query(models.User).filter(models.User.username == update.username).first()
        if taken:
            raise HTTPException(status_code=400, detail="Username already taken")
        current_user.username = update.username
    if update.full_name is not None:
        current_user.full_name = update.full_name
    db.add(current_user)
    db.commit()
    db.refresh(current_user)
    return current_user
