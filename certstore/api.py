"""
API для работы с сертификатами
"""
import logging
import secrets
import traceback
from datetime import datetime
from typing import Callable, List, Optional

from fastapi import Depends, FastAPI, File, Form, Query, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .database import CertificateRepository
from .exceptions import (
    ArtifactDeleteError,
    ArtifactUploadError,
    AuthorizationError,
    CertificateNotFoundError,
    DatabaseError,
    StorageError,
    ValidationError,
)
from .lifecycle import CertificateLifecycleManager
from .models import (
    BatchCreateResult,
    BulkDeleteReport,
    Certificate,
    CertificateBatchRequest,
    CertificatePage,
    CertificateStats,
    CertificateUpdateRequest,
    CertificateUpload,
    DailyTrendPoint,
    MonthlyTrendPoint,
    OwnerDeleteResult,
    UpdateResult,
)
from .queries import CertificateQueryService
from .storage import ArtifactStore

bearer_scheme = HTTPBearer(auto_error=False)


def _to_upload(file: UploadFile) -> CertificateUpload:
    """Конвертирует файл из multipart запроса в модель загрузки."""
    return CertificateUpload(
        filename=file.filename,
        content_type=file.content_type,
        content=file.file.read()
    )


def _describe_validation_error(error: PydanticValidationError) -> str:
    """Краткое описание ошибок pydantic для ответа API."""
    return "; ".join(
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )


class CertificateAPI:
    """API для работы с сертификатами"""

    def __init__(
            self,
            repository: CertificateRepository,
            artifact_store: ArtifactStore,
            api_key: Optional[str] = None,
            debug: bool = False,
            clock: Optional[Callable[[], datetime]] = None
    ):
        self.repository = repository
        self.artifact_store = artifact_store
        self.api_key = api_key
        self.debug = debug
        self.lifecycle = CertificateLifecycleManager(repository, artifact_store)
        self.queries = CertificateQueryService(repository, clock)
        self.logger = logging.getLogger(__name__)

        # Создание FastAPI приложения
        self.app = FastAPI(
            title="Certificate Store API",
            description="API для управления сертификатами студентов",
            version="1.0.0"
        )

        self._setup_exception_handlers()
        self._setup_routes()

    def _verify_api_key(
            self,
            credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
    ) -> bool:
        """Проверка API ключа"""
        if credentials is None:
            raise AuthorizationError("No token, authorization denied")
        if not self.api_key or not secrets.compare_digest(
            credentials.credentials.encode("utf-8"), self.api_key.encode("utf-8")
        ):
            raise AuthorizationError("Invalid token")
        return True

    def _error_response(self, status_code: int, message: str,
                        exc: Optional[Exception] = None) -> JSONResponse:
        """Ответ об ошибке в формате {message, error}; стек только в режиме разработки."""
        content = {"message": message}
        if exc is not None:
            content["error"] = str(exc)
            if self.debug:
                content["stack"] = "".join(
                    traceback.format_exception(type(exc), exc, exc.__traceback__)
                )
        return JSONResponse(status_code=status_code, content=content)

    def _setup_exception_handlers(self):
        """Преобразование исключений в ответы API"""

        @self.app.exception_handler(ValidationError)
        async def handle_validation_error(request, exc: ValidationError):
            self.logger.warning(f"Ошибка валидации: {exc}")
            return self._error_response(400, str(exc))

        @self.app.exception_handler(RequestValidationError)
        async def handle_request_validation_error(request, exc: RequestValidationError):
            self.logger.warning(f"Некорректный запрос {request.url.path}: {exc.errors()}")
            return JSONResponse(
                status_code=400,
                content={"message": "Invalid request", "error": str(exc.errors())}
            )

        @self.app.exception_handler(AuthorizationError)
        async def handle_authorization_error(request, exc: AuthorizationError):
            self.logger.warning(f"Отказ в доступе к {request.url.path}: {exc}")
            return self._error_response(401, str(exc))

        @self.app.exception_handler(CertificateNotFoundError)
        async def handle_not_found(request, exc: CertificateNotFoundError):
            return self._error_response(404, "Certificate not found")

        @self.app.exception_handler(ArtifactUploadError)
        async def handle_upload_error(request, exc: ArtifactUploadError):
            self.logger.error(f"Ошибка загрузки файла: {exc}")
            return self._error_response(500, "Artifact upload failed", exc)

        @self.app.exception_handler(StorageError)
        async def handle_storage_error(request, exc: StorageError):
            self.logger.error(f"Ошибка хранилища файлов: {exc}")
            return self._error_response(500, "Artifact store error", exc)

        @self.app.exception_handler(DatabaseError)
        async def handle_database_error(request, exc: DatabaseError):
            self.logger.error(f"Ошибка БД: {exc}")
            return self._error_response(500, "Database error", exc)

        @self.app.exception_handler(StarletteHTTPException)
        async def handle_http_exception(request, exc: StarletteHTTPException):
            return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)})

        @self.app.exception_handler(Exception)
        async def handle_unexpected(request, exc: Exception):
            self.logger.exception(f"Неожиданная ошибка {request.url.path}: {exc}")
            return self._error_response(500, "Server error", exc)

    def _setup_routes(self):
        """Настройка маршрутов API"""
        authorized = Depends(self._verify_api_key)

        @self.app.get("/")
        def liveness():
            """Проверка, что API запущен"""
            return {"message": "API running"}

        @self.app.get("/certificates", response_model=CertificatePage)
        def list_certificates(
                page: Optional[str] = Query(None),
                limit: Optional[str] = Query(None)
        ):
            """Постраничный список сертификатов (публичный)"""
            return self.queries.list_certificates(page, limit)

        @self.app.post("/certificates", response_model=BatchCreateResult, dependencies=[authorized])
        def create_certificates(
                certificate: Optional[List[UploadFile]] = File(None),
                owner_id: Optional[str] = Form(None, alias="ownerId")
        ):
            """Пакетная загрузка до 10 сертификатов владельца"""
            try:
                request = CertificateBatchRequest(
                    owner_id=owner_id or "",
                    files=[_to_upload(file) for file in certificate or []]
                )
            except PydanticValidationError as e:
                raise ValidationError(_describe_validation_error(e))

            result = self.lifecycle.create_certificates(request.owner_id, request.files)
            if result.is_partial:
                self.logger.warning(
                    f"Пакетная загрузка для {request.owner_id} выполнена частично: "
                    f"{len(result.certificates)} из {len(request.files)}"
                )
            return result

        @self.app.delete("/certificates", response_model=BulkDeleteReport, dependencies=[authorized])
        def delete_all_certificates():
            """Удаление всех сертификатов из БД и хранилища файлов"""
            return self.lifecycle.delete_all_certificates()

        @self.app.get("/certificates/search", response_model=List[Certificate])
        def search_certificates(owner_id: Optional[str] = Query(None, alias="ownerId")):
            """Поиск сертификатов по владельцу (публичный)"""
            return self.queries.search_by_owner(owner_id)

        @self.app.get("/certificates/stats", response_model=CertificateStats, dependencies=[authorized])
        def get_statistics():
            """Общая статистика"""
            return self.queries.get_statistics()

        @self.app.get(
            "/certificates/trends/daily",
            response_model=List[DailyTrendPoint],
            dependencies=[authorized]
        )
        def daily_trend():
            """Количество сертификатов по дням за последнюю неделю"""
            return self.queries.daily_trend()

        @self.app.get(
            "/certificates/trends/monthly",
            response_model=List[MonthlyTrendPoint],
            dependencies=[authorized]
        )
        def monthly_trend():
            """Количество сертификатов по месяцам за последний год"""
            return self.queries.monthly_trend()

        @self.app.get("/certificates/storage-test", dependencies=[authorized])
        def storage_test():
            """Проверка доступности хранилища файлов"""
            try:
                details = self.artifact_store.check_connection()
            except StorageError as e:
                self.logger.error(f"Проверка хранилища не удалась: {e}")
                return self._error_response(500, "Artifact store test failed", e)

            return {"status": "Artifact store working properly", "details": details}

        @self.app.get("/certificates/download/{certificate_id}")
        def download_certificate(certificate_id: str):
            """Перенаправление на файл сертификата (публичный)"""
            certificate = self.queries.get_certificate(certificate_id)
            return RedirectResponse(certificate.certificate_url, status_code=302)

        @self.app.put("/certificates/{certificate_id}", response_model=UpdateResult, dependencies=[authorized])
        def update_certificate(
                certificate_id: str,
                certificate: Optional[UploadFile] = File(None),
                owner_id: Optional[str] = Form(None, alias="ownerId")
        ):
            """Замена файла и/или владельца сертификата"""
            try:
                request = CertificateUpdateRequest(
                    owner_id=owner_id,
                    file=_to_upload(certificate) if certificate is not None else None
                )
            except PydanticValidationError as e:
                raise ValidationError(_describe_validation_error(e))

            result = self.lifecycle.replace_certificate(certificate_id, request.file, request.owner_id)
            if result.orphaned_public_id:
                self.logger.warning(
                    f"Сертификат {certificate_id} обновлен, старый файл "
                    f"{result.orphaned_public_id} остался в хранилище"
                )
            return result

        @self.app.delete(
            "/certificates/owner/{owner_id}",
            response_model=OwnerDeleteResult,
            dependencies=[authorized]
        )
        def delete_owner_certificates(owner_id: str):
            """Удаление записей владельца (файлы в хранилище не удаляются)"""
            return self.lifecycle.delete_owner_certificates(owner_id)

        @self.app.delete("/certificates/{certificate_id}", dependencies=[authorized])
        def delete_certificate(certificate_id: str):
            """Строгое удаление сертификата из обоих хранилищ"""
            try:
                self.lifecycle.delete_certificate(certificate_id)
            except ArtifactDeleteError as e:
                # Файл не удален, запись не тронута: ни одно хранилище не изменилось
                return self._error_response(500, "Deletion failed - rolled back", e)

            return {"message": "Certificate completely deleted from both systems"}
