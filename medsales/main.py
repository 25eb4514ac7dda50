# medsales/main.py
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.errors import register_exception_handlers
from .core.logconfig import configure_logging
from .api.deps import get_current_user, CurrentUser

# ---- Routers ----
from .api import fx, proposals, reports, locations
from .api.catalog import clinics_router, products_router, campaigns_router


configure_logging()

app = FastAPI(title="MedSales CRM API")

# ---------------------------
# CORS (mobil/web istemciler)
# ---------------------------
DEFAULT_CORS_ORIGINS = [
    "http://localhost:8081",
    "http://127.0.0.1:8081",
    "http://localhost:19006",
    "http://127.0.0.1:19006",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def _resolve_allowed_origins() -> list[str]:
    # settings.CORS_ALLOW_ORIGINS virgüllü string (veya liste) olabilir
    raw = getattr(settings, "CORS_ALLOW_ORIGINS", None)
    if not raw:
        return DEFAULT_CORS_ORIGINS
    if isinstance(raw, (list, tuple)):
        vals = [str(x).strip().rstrip("/") for x in raw if str(x).strip()]
    else:
        vals = [s.strip().rstrip("/") for s in str(raw).split(",") if s.strip()]
    # Yıldız credentials ile kullanılamaz; dev listesine indir
    if len(vals) == 1 and vals[0] == "*":
        return DEFAULT_CORS_ORIGINS
    return vals or DEFAULT_CORS_ORIGINS


ALLOW_ORIGINS = _resolve_allowed_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


# ---------------------------
# Health & Current User
# ---------------------------
@app.get("/health", tags=["system"])
def health():
    return {"status": "ok"}


@app.get("/me", tags=["auth"])
def me(current: CurrentUser = Depends(get_current_user)):
    return {
        "id": current.id,
        "email": current.email,
        "name": current.name,
        "role": current.role,
        "region_id": current.region_id,
    }


# ---------------------------
# Routers
# ---------------------------
app.include_router(fx.router)
app.include_router(clinics_router)
app.include_router(products_router)
app.include_router(campaigns_router)
app.include_router(proposals.router)
app.include_router(reports.surgery_router)
app.include_router(reports.visit_router)
app.include_router(locations.router)
