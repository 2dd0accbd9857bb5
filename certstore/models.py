"""
Pydantic модели для валидации и сериализации данных сертификатов.

Модели, которые уходят наружу через API, сериализуются в camelCase
(``ownerId``, ``certificateUrl``), внутри кода используются snake_case имена.
"""

from datetime import datetime, date
from typing import List, Optional
from pydantic import BaseModel, Field, validator
from pydantic.alias_generators import to_camel
from .exceptions import ValidationError

# Максимальное количество файлов в одной пакетной загрузке
MAX_FILES_PER_UPLOAD = 10


class CamelModel(BaseModel):
    """Базовая модель с camelCase алиасами для JSON."""

    class Config:
        """Конфигурация модели."""
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class Certificate(CamelModel):
    """Запись сертификата: метаданные и ссылка на файл в хранилище."""
    id: str = Field(..., description="Идентификатор записи")
    owner_id: str = Field(..., description="Идентификатор студента-владельца")
    certificate_url: str = Field(..., description="Ссылка на файл сертификата")
    public_id: str = Field(..., description="Идентификатор файла в хранилище")
    created_at: datetime = Field(..., description="Дата создания (UTC)")

    class Config:
        """Конфигурация модели."""
        json_schema_extra = {
            "example": {
                "id": "1b4e28ba-2fa1-11d2-883f-0016d3cca427",
                "ownerId": "student-42",
                "certificateUrl": "https://cdn.example.com/certificates/2024/03/5f1c.pdf",
                "publicId": "certificates/2024/03/5f1c.pdf",
                "createdAt": "2024-03-01T10:00:00"
            }
        }


class StoredArtifact(BaseModel):
    """Результат загрузки файла в хранилище."""
    locator: str = Field(..., description="URL для скачивания файла")
    handle: str = Field(..., description="Идентификатор файла для удаления/замены")


class CertificateUpload(BaseModel):
    """Загруженный файл сертификата."""
    filename: Optional[str] = Field(None, description="Исходное имя файла")
    content_type: Optional[str] = Field(None, description="MIME тип файла")
    content: bytes = Field(..., description="Содержимое файла")

    @validator('content')
    def validate_content(cls, v):
        """Файл не может быть пустым."""
        if not v:
            raise ValidationError("Файл сертификата пуст")
        return v


class CertificateBatchRequest(BaseModel):
    """Запрос на пакетную загрузку сертификатов одного владельца."""
    owner_id: str = Field(..., description="Идентификатор владельца")
    files: List[CertificateUpload] = Field(..., description="Файлы сертификатов")

    @validator('owner_id')
    def validate_owner_id(cls, v):
        """Идентификатор владельца обязателен."""
        owner_id = v.strip()
        if not owner_id:
            raise ValidationError("ownerId is required")
        return owner_id

    @validator('files')
    def validate_files(cls, v):
        """Проверка количества файлов."""
        if not v:
            raise ValidationError("No files uploaded")
        if len(v) > MAX_FILES_PER_UPLOAD:
            raise ValidationError(f"Too many files: at most {MAX_FILES_PER_UPLOAD} per upload")
        return v


class CertificateUpdateRequest(BaseModel):
    """Запрос на замену файла и/или владельца сертификата."""
    owner_id: Optional[str] = Field(None, description="Новый владелец")
    file: Optional[CertificateUpload] = Field(None, description="Новый файл")

    @validator('owner_id')
    def normalize_owner_id(cls, v):
        """Пустой владелец означает, что владелец не меняется."""
        if v is None:
            return None
        return v.strip() or None


class Pagination(CamelModel):
    """Метаданные постраничного вывода."""
    total: int
    total_pages: int
    current_page: int
    items_per_page: int
    has_next_page: bool
    has_previous_page: bool


class CertificatePage(CamelModel):
    """Страница списка сертификатов."""
    data: List[Certificate]
    pagination: Pagination


class CertificateStats(CamelModel):
    """Общая статистика."""
    total_certs: int
    unique_owners: int


class DailyTrendPoint(CamelModel):
    """Количество сертификатов за календарный день."""
    date: date
    count: int


class MonthlyTrendPoint(CamelModel):
    """Количество сертификатов за месяц, label в формате M-YYYY."""
    label: str
    count: int


class CreateFailure(CamelModel):
    """Описание файла, на котором остановилась пакетная загрузка."""
    index: int = Field(..., description="Порядковый номер файла (с 1)")
    filename: Optional[str] = None
    error: str
    orphaned_public_id: Optional[str] = Field(
        None,
        description="Файл, оставшийся в хранилище без записи в БД"
    )


class BatchCreateResult(CamelModel):
    """Результат пакетной загрузки."""
    certificates: List[Certificate] = Field(default_factory=list)
    failure: Optional[CreateFailure] = None

    @property
    def is_partial(self) -> bool:
        """Загрузка была прервана ошибкой."""
        return self.failure is not None


class UpdateResult(CamelModel):
    """Результат замены сертификата."""
    certificate: Certificate
    orphaned_public_id: Optional[str] = Field(
        None,
        description="Старый файл, который не удалось удалить из хранилища"
    )


class ArtifactDeleteFailure(CamelModel):
    """Ошибка удаления одного файла при массовом удалении."""
    public_id: str
    error: str


class ArtifactDeletionSummary(CamelModel):
    """Итог удаления файлов из хранилища."""
    attempted: int
    successful: int
    failed: int
    errors: List[ArtifactDeleteFailure] = Field(default_factory=list)


class MetadataDeletionSummary(CamelModel):
    """Итог удаления записей из БД."""
    deleted_count: int


class BulkDeleteReport(CamelModel):
    """Отчет о массовом удалении сертификатов."""
    message: str
    artifact_store: ArtifactDeletionSummary
    metadata_store: MetadataDeletionSummary


class OwnerDeleteResult(CamelModel):
    """Результат удаления записей владельца.

    Файлы в хранилище при этом не удаляются, их идентификаторы
    возвращаются в ``retained_artifacts``.
    """
    message: str
    owner_id: str
    deleted_certificates: int
    retained_artifacts: List[str] = Field(default_factory=list)
