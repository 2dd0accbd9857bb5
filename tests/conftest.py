"""
Общие фикстуры для тестов
"""
import uuid
from datetime import datetime

import pytest

from certstore.database import CertificateRepository, DatabaseManager
from certstore.exceptions import ArtifactDeleteError, ArtifactUploadError
from certstore.lifecycle import CertificateLifecycleManager
from certstore.models import CertificateUpload, StoredArtifact
from certstore.queries import CertificateQueryService
from certstore.storage import ArtifactStore

FIXED_NOW = datetime(2024, 3, 15, 12, 0, 0)


class InMemoryArtifactStore(ArtifactStore):
    """Хранилище файлов в памяти с управляемыми ошибками"""

    def __init__(self):
        self.blobs = {}
        self.store_calls = 0
        self.fail_uploads = set()  # номера вызовов store, начиная с 1
        self.fail_deletes = set()  # идентификаторы файлов
        self.fail_all_deletes = False

    def store(self, content, filename=None, content_type=None):
        self.store_calls += 1
        if self.store_calls in self.fail_uploads:
            raise ArtifactUploadError(f"Upload {self.store_calls} failed")

        handle = f"certificates/{uuid.uuid4().hex}"
        self.blobs[handle] = content
        return StoredArtifact(locator=f"https://cdn.test/{handle}", handle=handle)

    def delete(self, handle):
        if self.fail_all_deletes or handle in self.fail_deletes:
            raise ArtifactDeleteError(f"Delete of {handle} failed")
        self.blobs.pop(handle, None)

    def check_connection(self):
        return {"backend": "memory", "objects": len(self.blobs)}


@pytest.fixture
def db_manager():
    """БД SQLite в памяти"""
    manager = DatabaseManager("sqlite://")
    manager.create_tables()
    yield manager
    manager.drop_tables()
    manager.dispose()


@pytest.fixture
def repository(db_manager):
    """Репозиторий сертификатов"""
    return CertificateRepository(db_manager)


@pytest.fixture
def artifact_store():
    """Хранилище файлов в памяти"""
    return InMemoryArtifactStore()


@pytest.fixture
def lifecycle(repository, artifact_store):
    """Менеджер жизненного цикла"""
    return CertificateLifecycleManager(repository, artifact_store)


@pytest.fixture
def queries(repository):
    """Сервис запросов с фиксированным временем"""
    return CertificateQueryService(repository, clock=lambda: FIXED_NOW)


@pytest.fixture
def make_upload():
    """Фабрика загружаемых файлов"""
    def _make(name="certificate.pdf", content=None):
        return CertificateUpload(
            filename=name,
            content_type="application/pdf",
            content=content or f"%PDF-1.4 {name}".encode()
        )
    return _make
