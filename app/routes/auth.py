import logging

from fastapi import APIRouter, Depends, HTTPException, Response, Request
from jose import JWTError
from sqlalchemy.orm import Session

from app.core.context import get_settings
from app.core.errors import ConflictError
from app.db.session import get_db
from app.models.user import RoleEnum, User as UserModel
from app.schemas.user import UserRegister, UserRead, Token, LoginRequest
from app.services import auth as auth_service
from app.services.permissions import permissions_for

router = APIRouter(prefix="/auth", tags=["Auth"])
logger = logging.getLogger(__name__)

REFRESH_COOKIE = "refresh_token"


def _set_refresh_cookie(response: Response, token: str, settings):
    # secure only outside development, where the app runs behind HTTPS
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=token,
        httponly=True,
        secure=settings.APP_ENV != "development",
        samesite="lax",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600,
        path="/",
    )


def ensure_unique(db: Session, email=None, username=None, exclude_id=None):
    if email:
        q = db.query(UserModel).filter(UserModel.email == email)
        if exclude_id is not None:
            q = q.filter(UserModel.id != exclude_id)
        if q.first():
            raise ConflictError("Email já registrado")
    if username:
        q = db.query(UserModel).filter(UserModel.username == username)
        if exclude_id is not None:
            q = q.filter(UserModel.id != exclude_id)
        if q.first():
            raise ConflictError("Nome de usuário já em uso")


@router.post("/register", response_model=UserRead)
def register(user_in: UserRegister, db: Session = Depends(get_db)):
    ensure_unique(db, user_in.email, user_in.username)
    # the first account owns the restaurant; everyone else starts as waiter
    role = RoleEnum.owner if db.query(UserModel).count() == 0 else RoleEnum.waiter
    user = UserModel(
        email=user_in.email,
        username=user_in.username,
        display_name=user_in.display_name,
        senha_hash=auth_service.get_password_hash(user_in.password),
        papel=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered %s as %s", user.email, role.value)
    return user


@router.post("/login", response_model=Token)
def login(form_data: LoginRequest, response: Response, db: Session = Depends(get_db),
          settings=Depends(get_settings)):
    # accepts identifier (email OR username) + password
    user = auth_service.authenticate_user(db, form_data.identifier, form_data.password)
    if not user:
        raise HTTPException(status_code=400, detail="Email ou senha incorretos")
    access_token = auth_service.create_access_token({"sub": user.email, "role": user.role}, settings)
    refresh_token = auth_service.open_session(db, user.email, settings)
    db.commit()
    _set_refresh_cookie(response, refresh_token, settings)
    return {"access_token": access_token, "token_type": "bearer"}


@router.post("/refresh", response_model=Token)
def refresh_token(request: Request, response: Response, db: Session = Depends(get_db),
                  settings=Depends(get_settings)):
    token = request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise HTTPException(status_code=401, detail="Token de refresh ausente")
    try:
        payload = auth_service.decode_token(token, settings)
    except JWTError:
        raise HTTPException(status_code=401, detail="Token de refresh inválido")
    email, jti = payload.get("sub"), payload.get("jti")
    if email is None or jti is None or payload.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Token de refresh inválido")

    ses = auth_service.find_usable_session(db, jti)
    if ses is None:
        raise HTTPException(status_code=401, detail="Token de refresh revogado ou expirado")
    user = db.query(UserModel).filter(UserModel.email == email).first()
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="Usuário inativo")

    # Rotate: the old refresh token stops working once a new one is issued
    ses.revoked = True
    new_refresh = auth_service.open_session(db, email, settings)
    db.commit()
    _set_refresh_cookie(response, new_refresh, settings)
    access_token = auth_service.create_access_token({"sub": email, "role": user.role}, settings)
    return {"access_token": access_token, "token_type": "bearer"}


@router.post("/logout")
def logout(response: Response, db: Session = Depends(get_db),
           current_user=Depends(auth_service.get_current_user)):
    revoked = auth_service.revoke_sessions(db, current_user.email)
    db.commit()
    response.delete_cookie(REFRESH_COOKIE, path="/")
    return {"ok": True, "revoked": revoked}


@router.get("/me", response_model=UserRead)
def read_users_me(current_user=Depends(auth_service.get_current_user)):
    return current_user


@router.get("/me/permissions")
def read_my_permissions(current_user=Depends(auth_service.get_current_user)):
    return {"role": current_user.role, "permissions": permissions_for(current_user.role)}
