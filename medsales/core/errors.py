# medsales/core/errors.py
import logging
from typing import List, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class CRMError(Exception):
    """Uygulama hatalarının ortak tabanı; mesaj kullanıcıya gösterilebilir."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CRMError):
    """Eksik klinik/kalem veya geçersiz sayısal giriş. Ağ çağrısından ÖNCE atılır."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class PermissionDenied(CRMError):
    """Rol bu işlem için yetkili değil."""

    status_code = status.HTTP_403_FORBIDDEN


class FetchError(CRMError):
    """Okuma hatası (backend/DB). Çağıran taraf boş/önceki veriyle devam eder."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class WriteError(CRMError):
    """Insert/update hatası. Otomatik tekrar yok."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class PartialWriteWarning(CRMError):
    """
    Teklif başlığı yazıldı ama bazı kalemler yazılamadı.
    Raise edilmez; submit sonucunda uyarı olarak taşınır.
    """

    status_code = status.HTTP_201_CREATED

    def __init__(self, message: str, proposal_id: int, failed_indexes: Optional[List[int]] = None):
        super().__init__(message)
        self.proposal_id = proposal_id
        self.failed_indexes = list(failed_indexes or [])


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CRMError)
    async def _crm_error_handler(request: Request, exc: CRMError):
        if exc.status_code >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        else:
            logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "error": type(exc).__name__},
        )
