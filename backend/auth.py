from typing import Any, Callable, Dict, Optional
from datetime import timedelta

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ALGORITHM,
    SECRET_KEY,
    SEED_ADMIN_EMAIL,
    SEED_ADMIN_PASSWORD,
)
from database import get_db, utcnow
from schemas import Role, User

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


# Simple in-db user storage with hashed passwords (seed on first run)

def seed_super_admin(db=None):
    db = db if db is not None else get_db()
    existing = db["user"].find_one({"email": SEED_ADMIN_EMAIL})
    if not existing:
        admin = User(uid="admin-1", role=Role.SUPERADMIN.value, email=SEED_ADMIN_EMAIL, name="Super Admin")
        db["user"].insert_one({**admin.model_dump(), "password": hash_password(SEED_ADMIN_PASSWORD)})


def authenticate(email: str, password: str, db=None) -> Optional[Dict[str, Any]]:
    db = db if db is not None else get_db()
    user = db["user"].find_one({"email": email})
    if not user or not verify_password(password, user.get("password", "")):
        return None
    return user


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def token_for(user: Dict[str, Any]) -> str:
    return create_access_token({
        "sub": user["uid"],
        "email": user["email"],
        "role": user["role"],
    })


def get_current_user(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    if not authorization:
        raise HTTPException(status_code=401, detail="Not authenticated")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Invalid authentication scheme")
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id: str = payload.get("sub")
        email: str = payload.get("email")
        role: str = payload.get("role")
        if user_id is None:
            raise HTTPException(status_code=401, detail="Invalid token")
        return {"uid": user_id, "email": email, "role": role}
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")


def require_roles(*roles: str) -> Callable[..., Dict[str, Any]]:
    """Dependency factory rejecting callers whose role is not in ``roles``."""

    def dependency(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if user["role"] not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user

    return dependency
