from datetime import datetime, timedelta, timezone
import uuid
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import or_
from sqlalchemy.orm import Session
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from app.core.errors import PermissionDenied, ValidationError
from app.core.timezone_utils import utcnow
from app.db.session import get_db
from app.models.session import Session as SessionModel
from app.models.user import User

# pbkdf2 has no 72-byte password limit; bcrypt stays so old hashes still verify.
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def verify_password(plain_password, hashed_password):
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    if not password or len(password) < 6:
        raise ValidationError("A senha deve ter pelo menos 6 caracteres")
    try:
        return pwd_context.hash(password)
    except ValueError as exc:
        raise ValidationError("Senha longa demais; escolha uma senha menor") from exc


def _encode(data: dict, expire: datetime, token_type: str, settings):
    to_encode = data.copy()
    jti = str(uuid.uuid4())
    to_encode.update({"exp": expire, "jti": jti, "type": token_type})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM), jti


def create_access_token(data: dict, settings, expires_delta: Optional[timedelta] = None):
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    token, _ = _encode(data, expire, "access", settings)
    return token


def create_refresh_token(data: dict, settings, expires_delta: Optional[timedelta] = None):
    """Return (token, jti, naive UTC expiry); the jti is stored in the sessions table."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))
    token, jti = _encode(data, expire, "refresh", settings)
    return token, jti, expire.replace(tzinfo=None)


def decode_token(token: str, settings) -> dict:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


def authenticate_user(db: Session, identifier: str, password: str):
    """Look a user up by email or username and check the password.

    Deleted accounts never authenticate.
    """
    user = db.query(User).filter(or_(User.email == identifier, User.username == identifier)).first()
    if not user or not user.is_active:
        return False
    if not verify_password(password, user.senha_hash):
        return False
    return user


def open_session(db: Session, email: str, settings):
    """Issue a refresh token and persist its session row (not committed)."""
    refresh_token, jti, expires_at = create_refresh_token({"sub": email}, settings)
    db.add(SessionModel(jti=jti, user_email=email, expires_at=expires_at))
    return refresh_token


def get_current_user(request: Request, token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
    settings = request.app.state.context.settings
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token, settings)
    except JWTError:
        raise credentials_exception
    email = payload.get("sub")
    if email is None or payload.get("type") != "access":
        raise credentials_exception
    user = db.query(User).filter(User.email == email).first()
    if user is None or not user.is_active:
        raise credentials_exception
    return user


def revoke_sessions(db: Session, email: str) -> int:
    rows = db.query(SessionModel).filter(SessionModel.user_email == email, SessionModel.revoked.is_(False)).all()
    for row in rows:
        row.revoked = True
    return len(rows)


def find_usable_session(db: Session, jti: str):
    ses = db.query(SessionModel).filter(SessionModel.jti == jti).first()
    if ses is None or not ses.is_usable(utcnow()):
        return None
    return ses


def require_roles(*roles: str):
    """Return a dependency that ensures the current user has one of the provided roles.

    Usage in a route:
        @router.post('/{order_id}/close')
        def close(current_user=Depends(require_roles('owner', 'admin', 'manager'))):
            ...
    """
    def role_checker(current_user=Depends(get_current_user)):
        if current_user.role not in roles:
            raise PermissionDenied("Privilégios insuficientes")
        return current_user

    return role_checker
