"""
Управление жизненным циклом сертификатов: создание, замена и удаление.

Каждая операция затрагивает два хранилища без общей транзакции: БД
метаданных и хранилище файлов. Порядок операций для каждого случая:

* create: файл загружается первым, затем создается запись. Если запись
  создать не удалось, загруженный файл удаляется.
* replace: новый файл загружается, запись сохраняется, и только потом
  удаляется старый файл. Окно несогласованности: старый файл может
  остаться в хранилище без записи (возвращается как orphaned_public_id).
* delete_one: файл удаляется первым; при ошибке запись не трогается.
* delete_all: ошибки удаления файлов собираются в отчет, записи в БД
  удаляются в любом случае. Если не удалось удалить записи, отчет по
  файлам возвращается в BulkDeleteError.
* delete_by_owner: удаляются только записи, файлы остаются в хранилище;
  идентификаторы файлов читаются в той же транзакции, что и удаление.
"""

import logging
from typing import List, Optional

from .database import CertificateRepository
from .exceptions import (
    ArtifactDeleteError,
    BulkDeleteError,
    CertificateError,
    CertificateNotFoundError,
    DatabaseError,
    OrphanedArtifactError,
    StorageError,
    ValidationError,
)
from .models import (
    MAX_FILES_PER_UPLOAD,
    ArtifactDeleteFailure,
    ArtifactDeletionSummary,
    BatchCreateResult,
    BulkDeleteReport,
    Certificate,
    CertificateUpload,
    CreateFailure,
    MetadataDeletionSummary,
    OwnerDeleteResult,
    UpdateResult,
)
from .storage import ArtifactStore

logger = logging.getLogger(__name__)


class CertificateLifecycleManager:
    """Согласованные изменения сертификатов в БД и хранилище файлов."""

    def __init__(self, repository: CertificateRepository, artifact_store: ArtifactStore):
        self.repository = repository
        self.artifact_store = artifact_store

    def create_certificates(self, owner_id: str, files: List[CertificateUpload]) -> BatchCreateResult:
        """
        Пакетная загрузка сертификатов владельца.

        Каждый файл обрабатывается отдельно. Ошибка на файле k не отменяет
        уже созданные записи 1..k-1, обработка останавливается на файле k.

        Args:
            owner_id: Идентификатор владельца
            files: Файлы сертификатов (от 1 до 10)

        Returns:
            BatchCreateResult: Созданные записи и описание ошибки, если была

        Raises:
            ValidationError: Пустой список файлов, слишком много файлов или нет владельца
            CertificateError: Ошибка на первом же файле
        """
        if not owner_id or not owner_id.strip():
            raise ValidationError("ownerId is required")
        if not files:
            raise ValidationError("No files uploaded")
        if len(files) > MAX_FILES_PER_UPLOAD:
            raise ValidationError(f"Too many files: at most {MAX_FILES_PER_UPLOAD} per upload")

        logger.info(f"Загрузка {len(files)} сертификатов для владельца {owner_id}")

        result = BatchCreateResult()
        for index, upload in enumerate(files, 1):
            try:
                certificate = self._create_one(owner_id, upload)
            except CertificateError as e:
                if index == 1:
                    logger.error(f"Ошибка загрузки первого сертификата владельца {owner_id}: {e}")
                    raise

                logger.error(
                    f"Пакетная загрузка для {owner_id} остановлена на файле {index}: {e}. "
                    f"Создано записей: {len(result.certificates)}"
                )
                orphan = e.orphaned_public_id if isinstance(e, OrphanedArtifactError) else None
                result.failure = CreateFailure(
                    index=index,
                    filename=upload.filename,
                    error=str(e),
                    orphaned_public_id=orphan
                )
                break

            result.certificates.append(certificate)

        logger.info(f"Для владельца {owner_id} создано сертификатов: {len(result.certificates)}")
        return result

    def _create_one(self, owner_id: str, upload: CertificateUpload) -> Certificate:
        """Загрузка одного файла и создание записи с компенсацией."""
        artifact = self.artifact_store.store(upload.content, upload.filename, upload.content_type)

        try:
            return self.repository.create(owner_id, artifact.locator, artifact.handle)
        except DatabaseError as e:
            logger.warning(f"Запись не создана, удаляем загруженный файл {artifact.handle}")
            try:
                self.artifact_store.delete(artifact.handle)
            except StorageError as delete_error:
                logger.error(
                    f"Файл {artifact.handle} остался в хранилище без записи: {delete_error}"
                )
                raise OrphanedArtifactError(str(e), orphaned_public_id=artifact.handle)
            raise

    def replace_certificate(
            self,
            certificate_id: str,
            upload: Optional[CertificateUpload] = None,
            owner_id: Optional[str] = None
    ) -> UpdateResult:
        """
        Замена файла и/или владельца сертификата.

        Новый файл загружается до удаления старого. Если старый файл
        удалить не удалось, запись уже указывает на новый файл, а старый
        возвращается в orphaned_public_id.

        Args:
            certificate_id: Идентификатор записи
            upload: Новый файл
            owner_id: Новый владелец

        Returns:
            UpdateResult: Обновленная запись

        Raises:
            ValidationError: Не передано ни файла, ни владельца
            CertificateNotFoundError: Запись не найдена
            ArtifactUploadError: Новый файл не загружен, ничего не изменено
            DatabaseError: Запись не сохранена, новый файл удален
        """
        owner_id = owner_id.strip() if owner_id else None
        if upload is None and not owner_id:
            raise ValidationError("Nothing to update: provide a certificate file or ownerId")

        certificate = self.repository.get(certificate_id)
        if certificate is None:
            raise CertificateNotFoundError(f"Certificate {certificate_id} not found")

        logger.info(f"Обновление сертификата {certificate_id}")

        updated = certificate.model_copy()
        new_artifact = None
        if upload is not None:
            new_artifact = self.artifact_store.store(upload.content, upload.filename, upload.content_type)
            updated.certificate_url = new_artifact.locator
            updated.public_id = new_artifact.handle

        if owner_id:
            updated.owner_id = owner_id

        try:
            saved = self.repository.save(updated)
        except DatabaseError:
            if new_artifact is not None:
                self._discard_artifact(new_artifact.handle)
            raise

        orphaned_public_id = None
        if new_artifact is not None and certificate.public_id:
            try:
                self.artifact_store.delete(certificate.public_id)
            except StorageError as e:
                orphaned_public_id = certificate.public_id
                logger.error(
                    f"Старый файл {certificate.public_id} сертификата {certificate_id} "
                    f"не удален и остался в хранилище: {e}"
                )

        logger.info(f"Сертификат {certificate_id} обновлен")
        return UpdateResult(certificate=saved, orphaned_public_id=orphaned_public_id)

    def _discard_artifact(self, handle: str) -> None:
        """Удаляет файл, который не удалось связать с записью."""
        try:
            self.artifact_store.delete(handle)
        except StorageError as e:
            logger.error(f"Файл {handle} остался в хранилище без записи: {e}")

    def delete_certificate(self, certificate_id: str) -> None:
        """
        Строгое удаление: сначала файл, затем запись.

        Если файл удалить не удалось, запись остается нетронутой.

        Raises:
            CertificateNotFoundError: Запись не найдена
            ArtifactDeleteError: Файл не удален, запись сохранена
            DatabaseError: Ошибка удаления записи
        """
        certificate = self.repository.get(certificate_id)
        if certificate is None:
            raise CertificateNotFoundError(f"Certificate {certificate_id} not found")

        logger.info(f"Удаление сертификата {certificate_id}")

        if certificate.public_id:
            try:
                self.artifact_store.delete(certificate.public_id)
            except ArtifactDeleteError as e:
                logger.error(f"Файл сертификата {certificate_id} не удален, удаление отменено: {e}")
                raise

        try:
            self.repository.delete(certificate_id)
        except DatabaseError as e:
            logger.error(
                f"Файл {certificate.public_id} удален, но запись {certificate_id} осталась: {e}"
            )
            raise DatabaseError(
                f"Artifact {certificate.public_id} was deleted but the record "
                f"{certificate_id} could not be removed: {e}"
            )

        logger.info(f"Сертификат {certificate_id} удален из обоих хранилищ")

    def delete_all_certificates(self) -> BulkDeleteReport:
        """
        Массовое удаление всех сертификатов.

        Ошибки удаления отдельных файлов не прерывают цикл и попадают в
        отчет. Записи в БД удаляются одним запросом в любом случае.

        Returns:
            BulkDeleteReport: Отчет по обоим хранилищам

        Raises:
            BulkDeleteError: Записи не удалены после удаления файлов;
                отчет по файлам в атрибуте artifact_store
        """
        certificates = self.repository.list_all()
        logger.info(f"Массовое удаление: {len(certificates)} сертификатов")

        succeeded: List[str] = []
        failures: List[ArtifactDeleteFailure] = []
        for certificate in certificates:
            if not certificate.public_id:
                continue
            try:
                self.artifact_store.delete(certificate.public_id)
                succeeded.append(certificate.public_id)
            except StorageError as e:
                logger.error(f"Не удалось удалить файл {certificate.public_id}: {e}")
                failures.append(ArtifactDeleteFailure(public_id=certificate.public_id, error=str(e)))

        summary = ArtifactDeletionSummary(
            attempted=len(certificates),
            successful=len(succeeded),
            failed=len(failures),
            errors=failures
        )

        try:
            deleted_count = self.repository.delete_all()
        except DatabaseError as e:
            logger.error(
                f"Массовое удаление: файлов удалено {len(succeeded)}, но записи остались в БД: {e}"
            )
            raise BulkDeleteError(
                f"Artifacts were deleted ({len(succeeded)}: {', '.join(succeeded)}) "
                f"but the records could not be removed: {e}",
                artifact_store=summary
            )

        if failures:
            logger.warning(
                f"Массовое удаление: {len(failures)} файлов осталось в хранилище без записей"
            )
        logger.info(f"Массовое удаление завершено, удалено записей: {deleted_count}")

        return BulkDeleteReport(
            message="Bulk deletion completed",
            artifact_store=summary,
            metadata_store=MetadataDeletionSummary(deleted_count=deleted_count)
        )

    def delete_owner_certificates(self, owner_id: str) -> OwnerDeleteResult:
        """
        Удаление записей владельца без удаления файлов.

        Файлы остаются в хранилище, их идентификаторы возвращаются
        в retained_artifacts.

        Raises:
            ValidationError: Не указан владелец
        """
        if not owner_id or not owner_id.strip():
            raise ValidationError("ownerId is required")

        retained = self.repository.delete_by_owner(owner_id)
        deleted_count = len(retained)

        if retained:
            logger.warning(
                f"Удалены записи владельца {owner_id}, файлы остались в хранилище: {len(retained)}"
            )
        logger.info(f"Удалено записей владельца {owner_id}: {deleted_count}")

        return OwnerDeleteResult(
            message="All certificates of the owner were deleted; artifacts were retained in storage",
            owner_id=owner_id,
            deleted_certificates=deleted_count,
            retained_artifacts=retained
        )
