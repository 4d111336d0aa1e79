import logging
from typing import Any

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from gymos.api.deps import get_db, get_identity, Identity
from gymos.core.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from gymos.db.models import Gym, RefreshToken, Role, User
from gymos.schemas import (
    AuthResponse,
    LoginPayload,
    MeRead,
    RefreshRequest,
    RegisterPayload,
    TokenPair,
)
from gymos.security.utils import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    now_utc,
    token_sha256,
    verify_password,
)

log = logging.getLogger(__name__)

router = APIRouter()  # main.py mounts at /auth


def _issue_tokens(db: Session, user: User) -> dict:
    access, _ = create_access_token(user)
    refresh, jti, exp = create_refresh_token(user)
    db.add(
        RefreshToken(
            user_id=user.id,
            jti=jti,
            token_hash=token_sha256(refresh),
            expires_at=exp,
            revoked=False,
            created_at=now_utc(),
        )
    )
    return {"access_token": access, "refresh_token": refresh, "token_type": "bearer"}


def _load_user(db: Session, **filters) -> User | None:
    stmt = select(User).options(selectinload(User.role), selectinload(User.gym)).where(User.deleted_at.is_(None))
    for attr, value in filters.items():
        stmt = stmt.where(getattr(User, attr) == value)
    return db.execute(stmt).scalar_one_or_none()


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterPayload, db: Session = Depends(get_db)) -> Any:
    # Prevent duplicate email
    if db.execute(select(User.id).where(User.email == str(payload.email))).first():
        raise ConflictError("Email already registered")

    gym = db.get(Gym, payload.gym_id)
    if not gym or not gym.is_active or gym.deleted_at is not None:
        raise ValidationError("Invalid or inactive gym")

    role = db.get(Role, payload.role_id)
    if not role or role.gym_id != gym.id or role.deleted_at is not None:
        raise ValidationError("Invalid role for this gym")

    user = User(
        email=str(payload.email),
        password_hash=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
        gym_id=gym.id,
        role_id=role.id,
    )
    db.add(user)
    db.flush()
    user.role = role
    tokens = _issue_tokens(db, user)
    db.commit()
    log.info(f"user registered: {user.email} gym={gym.id} role={role.name}")
    return {**tokens, "user": _load_user(db, id=user.id)}


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginPayload, db: Session = Depends(get_db)) -> Any:
    user = _load_user(db, email=str(payload.email))
    if not user or not verify_password(payload.password, user.password_hash):
        raise UnauthorizedError("Invalid email or password")
    if not user.gym.is_active:
        raise UnauthorizedError("Your gym account is inactive")

    tokens = _issue_tokens(db, user)
    db.commit()
    return {**tokens, "user": _load_user(db, id=user.id)}


@router.post("/refresh", response_model=TokenPair, status_code=status.HTTP_200_OK)
def refresh_token(payload: RefreshRequest, db: Session = Depends(get_db)) -> Any:
    # 1) Decode & validate refresh token
    try:
        claims = decode_token(payload.refresh_token)
    except Exception:
        raise UnauthorizedError("Invalid refresh token")

    if claims.get("type") != "refresh":
        raise UnauthorizedError("Invalid token type")

    jti = claims.get("jti")
    user_id = claims.get("sub")
    if not jti or not user_id:
        raise UnauthorizedError("Invalid refresh token")

    # 2) Verify token record (not revoked/expired and matches user)
    rt = db.execute(
        select(RefreshToken).where(RefreshToken.jti == jti, RefreshToken.user_id == int(user_id))
    ).scalar_one_or_none()
    if (
        not rt
        or rt.revoked
        or rt.expires_at < now_utc()
        or rt.token_hash != token_sha256(payload.refresh_token)
    ):
        raise UnauthorizedError("Refresh token not valid")

    user = _load_user(db, id=rt.user_id)
    if not user:
        raise UnauthorizedError("Refresh token not valid")

    # 3) Revoke the used refresh token, 4) issue new access + refresh
    rt.revoked = True
    db.add(rt)
    tokens = _issue_tokens(db, user)
    db.commit()
    return tokens


@router.post("/logout", status_code=status.HTTP_200_OK)
def logout(payload: RefreshRequest, db: Session = Depends(get_db)) -> dict:
    try:
        claims = decode_token(payload.refresh_token)
    except Exception:
        raise UnauthorizedError("Invalid refresh token")

    if claims.get("type") != "refresh":
        raise UnauthorizedError("Invalid token type")

    jti = claims.get("jti")
    if not jti:
        raise UnauthorizedError("Invalid refresh token")

    rt = db.execute(select(RefreshToken).where(RefreshToken.jti == jti)).scalar_one_or_none()
    if rt and not rt.revoked:
        rt.revoked = True
        db.add(rt)
        db.commit()

    return {"status": "ok"}


@router.get("/me", response_model=MeRead)
def me(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)) -> Any:
    user = _load_user(db, id=identity.user_id, gym_id=identity.gym_id)
    if not user:
        raise NotFoundError("User not found")
    return MeRead.model_validate(
        {
            "id": user.id,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "email": user.email,
            "phone": user.phone,
            "gym_id": user.gym_id,
            "role": user.role,
            "created_at": user.created_at,
            "gym": user.gym,
            "permissions": user.role.permissions or {},
        },
        from_attributes=True,
    )
