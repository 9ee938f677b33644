import os
from pathlib import Path
from dotenv import load_dotenv
from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt

from app.database import SessionLocal
from app.models import Profile

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

ROLES = ("customer", "employee", "manager")


def _decode(authorization: str) -> dict:
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("Unsupported auth scheme")
        return jwt.decode(token, os.getenv("JWT_SECRET"), algorithms=["HS256"])
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")


def verify_token(authorization: str = Header(...)) -> dict:
    return _decode(authorization)


def optional_user(authorization: str = Header(None)):
    if not authorization:
        return None
    return _decode(authorization)


def require_role(*roles):
    def dependency(claims: dict = Depends(verify_token)):
        db = SessionLocal()
        try:
            profile = db.get(Profile, claims.get("sub"))
            role = profile.role if profile else None
        finally:
            db.close()

        if role not in roles:
            raise HTTPException(status_code=403, detail="Unauthorized")
        return claims

    return dependency


require_manager = require_role("manager")
