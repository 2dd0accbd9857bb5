"""
Модуль для работы с хранилищем файлов сертификатов.

Хранилище не транзакционно относительно БД метаданных: согласованность
обеспечивает CertificateLifecycleManager порядком операций.
"""
import logging
import os
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import ArtifactDeleteError, ArtifactUploadError, StorageError
from .models import StoredArtifact

logger = logging.getLogger(__name__)


class ArtifactStore(ABC):
    """Абстрактное хранилище файлов сертификатов."""

    @abstractmethod
    def store(self, content: bytes, filename: Optional[str] = None,
              content_type: Optional[str] = None) -> StoredArtifact:
        """
        Сохраняет файл.

        Args:
            content: Содержимое файла
            filename: Исходное имя файла (используется только расширение)
            content_type: MIME тип

        Returns:
            StoredArtifact: Ссылка и идентификатор сохраненного файла

        Raises:
            ArtifactUploadError: При ошибке загрузки
        """

    @abstractmethod
    def delete(self, handle: str) -> None:
        """
        Удаляет файл. Повторное удаление уже удаленного файла не ошибка.

        Raises:
            ArtifactDeleteError: При ошибке удаления
        """

    @abstractmethod
    def check_connection(self) -> Dict[str, Any]:
        """
        Проверяет доступность хранилища.

        Raises:
            StorageError: Хранилище недоступно или не настроено
        """

    @staticmethod
    def _build_key(filename: Optional[str], prefix: str = "") -> str:
        """Ключ файла в структуре [prefix/]YYYY/MM/<uuid><ext>."""
        now = datetime.now(timezone.utc)
        suffix = Path(filename).suffix.lower() if filename else ""
        key = f"{now.year}/{now.month:02d}/{uuid.uuid4().hex}{suffix}"
        prefix = prefix.strip("/")
        return f"{prefix}/{key}" if prefix else key


class S3ArtifactStore(ArtifactStore):
    """Хранилище файлов в S3-совместимом объектном хранилище."""

    def __init__(
            self,
            bucket: Optional[str],
            endpoint_url: Optional[str] = None,
            region: Optional[str] = None,
            access_key: Optional[str] = None,
            secret_key: Optional[str] = None,
            key_prefix: str = "certificates",
            public_base_url: Optional[str] = None,
            client=None
    ):
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.region = region
        self.access_key = access_key
        self.secret_key = secret_key
        self.key_prefix = key_prefix
        self.public_base_url = public_base_url
        self._client = client

    def _get_client(self):
        """
        Возвращает S3 клиент (создается при первом обращении).

        Raises:
            StorageError: Хранилище не настроено
        """
        if self._client is not None:
            return self._client

        if not self.bucket:
            raise StorageError("Хранилище не настроено: не указан S3_BUCKET")

        config = BotoConfig(
            signature_version="s3v4",
            retries={"max_attempts": 1, "mode": "standard"},
        )

        try:
            self._client = boto3.client(
                "s3",
                endpoint_url=self.endpoint_url,
                aws_access_key_id=self.access_key,
                aws_secret_access_key=self.secret_key,
                region_name=self.region,
                config=config,
            )
        except (BotoCoreError, ValueError) as e:
            raise StorageError(f"Ошибка подключения к хранилищу: {e}")

        return self._client

    def locator_for(self, key: str) -> str:
        """Публичная ссылка на объект."""
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        if self.region and self.region != "us-east-1":
            return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    def store(self, content: bytes, filename: Optional[str] = None,
              content_type: Optional[str] = None) -> StoredArtifact:
        key = self._build_key(filename, self.key_prefix)
        extra_args = {"ContentType": content_type} if content_type else {}

        try:
            client = self._get_client()
            client.put_object(Bucket=self.bucket, Key=key, Body=content, **extra_args)
        except StorageError as e:
            raise ArtifactUploadError(f"Ошибка загрузки файла: {e}")
        except (BotoCoreError, ClientError) as e:
            raise ArtifactUploadError(f"Ошибка загрузки файла {key}: {e}")

        logger.info(f"Файл загружен в хранилище: {key} ({len(content)} байт)")
        return StoredArtifact(locator=self.locator_for(key), handle=key)

    def delete(self, handle: str) -> None:
        try:
            client = self._get_client()
            client.delete_object(Bucket=self.bucket, Key=handle)
        except StorageError as e:
            raise ArtifactDeleteError(f"Ошибка удаления файла: {e}")
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("NoSuchKey", "404"):
                logger.info(f"Файл {handle} уже отсутствует в хранилище")
                return
            raise ArtifactDeleteError(f"Ошибка удаления файла {handle}: {e}")
        except BotoCoreError as e:
            raise ArtifactDeleteError(f"Ошибка удаления файла {handle}: {e}")

        logger.info(f"Файл удален из хранилища: {handle}")

    def check_connection(self) -> Dict[str, Any]:
        try:
            client = self._get_client()
            client.head_bucket(Bucket=self.bucket)
            result = client.list_objects_v2(Bucket=self.bucket, Prefix=self.key_prefix, MaxKeys=1)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Проверка хранилища не удалась: {e}")

        return {
            "backend": "s3",
            "bucket": self.bucket,
            "endpoint": self.endpoint_url,
            "credentials": "present" if self.access_key and self.secret_key else "missing",
            "sampled_objects": result.get("KeyCount", 0),
        }


class LocalArtifactStore(ArtifactStore):
    """Хранилище файлов в локальной директории (разработка и тесты)."""

    def __init__(self, base_path: str = "artifacts", public_base_url: Optional[str] = None):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url

    def _full_path(self, handle: str) -> Path:
        """Путь к файлу с защитой от выхода за пределы base_path."""
        base = self.base_path.resolve()
        path = (base / handle).resolve()
        if base != path and base not in path.parents:
            raise StorageError(f"Недопустимый идентификатор файла: {handle}")
        return path

    def locator_for(self, key: str) -> str:
        """Ссылка на файл: публичный URL или file:// URI."""
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        return self._full_path(key).as_uri()

    def store(self, content: bytes, filename: Optional[str] = None,
              content_type: Optional[str] = None) -> StoredArtifact:
        key = self._build_key(filename)
        path = self._full_path(key)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
            os.chmod(path, 0o644)
        except OSError as e:
            raise ArtifactUploadError(f"Ошибка сохранения файла {key}: {e}")

        logger.info(f"Файл сохранен локально: {path}")
        return StoredArtifact(locator=self.locator_for(key), handle=key)

    def delete(self, handle: str) -> None:
        try:
            self._full_path(handle).unlink(missing_ok=True)
        except (OSError, StorageError) as e:
            raise ArtifactDeleteError(f"Ошибка удаления файла {handle}: {e}")

        logger.info(f"Файл удален локально: {handle}")

    def load(self, handle: str) -> bytes:
        """
        Загрузка содержимого файла.

        Raises:
            StorageError: Файл не найден
        """
        path = self._full_path(handle)
        if not path.is_file():
            raise StorageError(f"Файл не найден: {handle}")
        return path.read_bytes()

    def exists(self, handle: str) -> bool:
        """Проверяет наличие файла."""
        return self._full_path(handle).is_file()

    def check_connection(self) -> Dict[str, Any]:
        if not self.base_path.is_dir():
            raise StorageError(f"Директория хранилища не найдена: {self.base_path}")
        if not os.access(self.base_path, os.W_OK):
            raise StorageError(f"Нет прав записи в {self.base_path}")

        return {
            "backend": "local",
            "path": str(self.base_path),
            "files": sum(1 for item in self.base_path.rglob("*") if item.is_file()),
        }


def get_artifact_store(settings) -> ArtifactStore:
    """
    Создает хранилище файлов по настройкам.

    Args:
        settings: Настройки приложения

    Returns:
        ArtifactStore: Хранилище выбранного типа
    """
    if settings.artifact_backend == "local":
        return LocalArtifactStore(settings.artifacts_path, settings.artifacts_public_url)

    return S3ArtifactStore(
        bucket=settings.s3_bucket,
        endpoint_url=settings.s3_endpoint_url,
        region=settings.s3_region,
        access_key=settings.s3_access_key,
        secret_key=settings.s3_secret_key,
        key_prefix=settings.s3_key_prefix,
        public_base_url=settings.artifacts_public_url,
    )
