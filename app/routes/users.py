from fastapi import APIRouter, Depends
from typing import List
from sqlalchemy.orm import Session

from app.core.errors import NotFound, PermissionDenied
from app.db.session import get_db
from app.models.user import RoleEnum, User as UserModel, UserStatus
from app.routes.auth import ensure_unique
from app.schemas.user import (
    NotificationPreferences,
    NotificationPreferencesUpdate,
    RoleUpdate,
    UserCreate,
    UserRead,
    UserUpdate,
)
from app.services import auth as auth_service
from app.services import notifications as notification_service
from app.services.permissions import can_change_role, has_permission, require_permission

router = APIRouter(prefix="/users", tags=["Users"])


def _get_user(db: Session, user_id: int) -> UserModel:
    user = db.query(UserModel).filter(UserModel.id == user_id).first()
    if not user:
        raise NotFound("Usuário não encontrado")
    return user


@router.get("", response_model=List[UserRead])
@router.get("/", response_model=List[UserRead])
def list_users(include_deleted: bool = False, db: Session = Depends(get_db),
               current_user=Depends(require_permission("users-management", "view"))):
    q = db.query(UserModel)
    if not include_deleted:
        q = q.filter(UserModel.status == UserStatus.active)
    return q.order_by(UserModel.id.desc()).limit(200).all()


@router.get("/me/notification-preferences", response_model=NotificationPreferences)
def read_my_notification_preferences(current_user=Depends(auth_service.get_current_user)):
    return notification_service.preferences_for(current_user)


@router.put("/me/notification-preferences", response_model=NotificationPreferences)
def update_my_notification_preferences(body: NotificationPreferencesUpdate, db: Session = Depends(get_db),
                                       current_user=Depends(auth_service.get_current_user)):
    """Partial update: switches left out keep their current value."""
    return notification_service.update_preferences(db, current_user, body.model_dump(exclude_none=True))


@router.get("/{user_id}", response_model=UserRead)
def get_user(user_id: int, db: Session = Depends(get_db),
             current_user=Depends(auth_service.get_current_user)):
    if current_user.id != user_id and not has_permission(current_user.role, "users-management", "view"):
        raise PermissionDenied("Privilégios insuficientes")
    return _get_user(db, user_id)


@router.post("", response_model=UserRead, status_code=201)
@router.post("/", response_model=UserRead, status_code=201)
def create_user(user_in: UserCreate, db: Session = Depends(get_db),
                current_user=Depends(require_permission("users-management", "create"))):
    if user_in.papel == RoleEnum.owner.value and current_user.role != RoleEnum.owner.value:
        raise PermissionDenied("Apenas o proprietário pode criar outro proprietário")
    ensure_unique(db, user_in.email, user_in.username)
    user = UserModel(
        email=user_in.email,
        username=user_in.username,
        display_name=user_in.display_name,
        senha_hash=auth_service.get_password_hash(user_in.password),
        papel=RoleEnum(user_in.papel),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.patch("/{user_id}", response_model=UserRead)
def update_user(user_id: int, user_in: UserUpdate, db: Session = Depends(get_db),
                current_user=Depends(auth_service.get_current_user)):
    # the user themself, or someone allowed to manage users
    if current_user.id != user_id and not has_permission(current_user.role, "users-management", "update"):
        raise PermissionDenied("Privilégios insuficientes")
    target = _get_user(db, user_id)
    ensure_unique(db, user_in.email, user_in.username, exclude_id=user_id)

    if user_in.email:
        target.email = user_in.email
    if user_in.username:
        target.username = user_in.username
    if user_in.display_name is not None:
        target.display_name = user_in.display_name
    if user_in.password:
        target.senha_hash = auth_service.get_password_hash(user_in.password)
    db.commit()
    db.refresh(target)
    return target


@router.put("/{user_id}/role", response_model=UserRead)
def update_role(user_id: int, body: RoleUpdate, db: Session = Depends(get_db),
                current_user=Depends(auth_service.get_current_user)):
    target = _get_user(db, user_id)
    if not can_change_role(current_user.role, target.role, body.papel):
        raise PermissionDenied("Sem permissão para alterar este papel")
    target.papel = RoleEnum(body.papel)
    db.commit()
    db.refresh(target)
    return target


@router.delete("/{user_id}")
def delete_user(user_id: int, db: Session = Depends(get_db),
                current_user=Depends(require_permission("users-management", "delete"))):
    """Soft delete: the account is kept for order history but can no longer log in."""
    target = _get_user(db, user_id)
    if target.id == current_user.id:
        raise PermissionDenied("Não é possível excluir a própria conta")
    target.status = UserStatus.deleted
    auth_service.revoke_sessions(db, target.email)
    db.commit()
    return {"ok": True}
