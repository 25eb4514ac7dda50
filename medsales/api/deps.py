# medsales/api/deps.py
from typing import Optional, Set
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..core.config import SessionLocal
from ..models import User
from ..core.security import decode_token
from ..services.currency import RateProvider, default_provider

# Swagger'da "Authorize" için tek Bearer alanı
auth_scheme = HTTPBearer(auto_error=True)

# ---------------------------
# DB Session Dependency
# ---------------------------
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# ---------------------------
# FX kaynağı (testlerde override edilebilir)
# ---------------------------
def get_rate_provider() -> RateProvider:
    return default_provider()

# ---------------------------
# Current User DTO
# ---------------------------
class CurrentUser:
    def __init__(self, id: int, email: str, name: str, role: str, region_id: Optional[int] = None):
        self.id = id
        self.email = email
        self.name = name
        self.role = role
        self.region_id = region_id

# ---------------------------
# AuthN: Token → CurrentUser
# ---------------------------
async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
    db: Session = Depends(get_db),
) -> CurrentUser:
    token = credentials.credentials
    try:
        payload = decode_token(token)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id: Optional[str] = payload.get("sub")
    if user_id is None or not str(user_id).isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.id == int(user_id)).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    # Pasif kullanıcı giriş yapamaz (silinmez, sadece pasife alınır)
    if user.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is inactive")

    # Rol ve bölge her zaman DB'den okunur; token'daki rol sadece bilgi amaçlı
    return CurrentUser(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        region_id=user.region_id,
    )

# ---------------------------
# AuthZ: Role Check
# ---------------------------
def require_roles(*roles: str):
    """
    Kullanım:
      current: CurrentUser = Depends(require_roles("admin", "manager"))
    """
    allowed: Set[str] = set(roles)

    def checker(current: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current.role in allowed:
            return current
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permission denied")

    return checker
