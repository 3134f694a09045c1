import logging
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from chatquota.core.auth_dependency import get_db
from chatquota.core.security import create_user_token
from chatquota.db.models.user import ROLE_USER
from chatquota.schemas.auth import RegisterRequest, TokenResponse, UserResponse
from chatquota.services import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    """
    Create an account; every new account starts on the Free tier.

    Self-registration always creates a User; any role sent by the client is
    ignored. Admin accounts are created with scripts/create_admin.py.
    """
    return user_service.register_user(db, payload.username, payload.password, ROLE_USER)


@router.post("/login", response_model=TokenResponse)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    user = user_service.authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    return TokenResponse(
        access_token=create_user_token(user),
        token_type="bearer",
        user=UserResponse.model_validate(user),
    )
