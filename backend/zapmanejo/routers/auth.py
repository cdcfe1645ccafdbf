"""
Auth router: registration, login, current user.
"""
from fastapi import APIRouter, Depends, HTTPException, Request

from .. import crud
from ..auth import get_current_user, get_db, hash_password, issue_token, verify_password
from ..schemas import LoginIn, MeOut, RegisterIn, TokenOut

router = APIRouter()


@router.post("/register", response_model=TokenOut, status_code=201)
def register(payload: RegisterIn, request: Request, db=Depends(get_db)):
    user = crud.create_user(
        db,
        email=payload.email,
        password_hash=hash_password(payload.password),
        name=payload.name,
        phone=payload.phone,
    )
    request.state.user_id = user.id
    return TokenOut(access_token=issue_token(user))


@router.post("/login", response_model=TokenOut)
def login(payload: LoginIn, request: Request, db=Depends(get_db)):
    user = crud.get_user_by_email(db, payload.email)
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    request.state.user_id = user.id
    return TokenOut(access_token=issue_token(user))


@router.get("/me", response_model=MeOut)
def me(user=Depends(get_current_user)):
    return MeOut.model_validate(user)
