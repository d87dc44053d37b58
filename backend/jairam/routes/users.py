from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import commit_or_conflict, get_db
from .. import auth, directory, models, rbac, schemas

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=schemas.UserOut)
async def read_profile(current_user: models.User = Depends(auth.get_current_user)):
    return current_user


@router.post("/", response_model=schemas.UserRegistrationOut, status_code=status.HTTP_201_CREATED)
def register_user(
    payload: schemas.UserCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    rbac.require_admin(current_user)
    user, result = directory.register_user(db, payload)
    commit_or_conflict(db)
    db.refresh(user)
    return schemas.UserRegistrationOut(
        user=schemas.UserOut.model_validate(user),
        reconciled=schemas.ReconciliationOut(
            co_authors=result.co_authors,
            suggested_reviewers=result.suggested_reviewers,
            reviewer_assignments=result.reviewer_assignments,
        ),
    )
