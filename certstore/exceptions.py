"""
Кастомные исключения для хранилища сертификатов.
"""


class CertificateError(Exception):
    """Базовое исключение для всех ошибок сертификатов."""
    pass


class ValidationError(CertificateError):
    """Ошибка валидации входных данных."""
    pass


class AuthorizationError(CertificateError):
    """Отсутствует или неверен ключ доступа."""
    pass


class CertificateNotFoundError(CertificateError):
    """Сертификат не найден."""
    pass


class DatabaseError(CertificateError):
    """Ошибка работы с базой данных метаданных."""
    pass


class OrphanedArtifactError(DatabaseError):
    """Запись не создана, а загруженный файл не удалось удалить из хранилища."""

    def __init__(self, message: str, orphaned_public_id: str):
        super().__init__(message)
        self.orphaned_public_id = orphaned_public_id


class BulkDeleteError(DatabaseError):
    """Файлы уже удалены из хранилища, но записи в БД удалить не удалось.

    Attributes:
        artifact_store: ArtifactDeletionSummary по уже обработанным файлам
    """

    def __init__(self, message: str, artifact_store):
        super().__init__(message)
        self.artifact_store = artifact_store


class StorageError(CertificateError):
    """Ошибка работы с хранилищем файлов сертификатов."""
    pass


class ArtifactUploadError(StorageError):
    """Не удалось загрузить файл в хранилище."""
    pass


class ArtifactDeleteError(StorageError):
    """Не удалось удалить файл из хранилища."""
    pass
