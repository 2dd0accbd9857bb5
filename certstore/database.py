"""
Модели SQLAlchemy и репозиторий метаданных сертификатов.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from sqlalchemy import (
    create_engine, Column, String, DateTime, Index, distinct, extract, text
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

from .exceptions import DatabaseError
from .models import Certificate

logger = logging.getLogger(__name__)

# Базовый класс для моделей
Base = declarative_base()


def utc_now() -> datetime:
    """Текущее время в UTC без информации о часовом поясе (формат хранения в БД)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class CertificateRecord(Base):
    """Модель записи сертификата."""

    __tablename__ = "certificates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(255), nullable=False, index=True)
    certificate_url = Column(String(2048), nullable=False)
    public_id = Column(String(1024), nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        Index('idx_certificate_created_at', 'created_at'),
    )

    def __repr__(self):
        return f"<CertificateRecord(id={self.id}, owner_id={self.owner_id})>"


class DatabaseManager:
    """Менеджер подключения к базе данных."""

    def __init__(self, database_url: str):
        """
        Инициализация менеджера БД.

        Args:
            database_url: URL подключения к БД
        """
        self.database_url = database_url

        if database_url.startswith("sqlite"):
            # Одна общая база в памяти для всех потоков (тесты, разработка)
            self.engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=False
            )
        else:
            self.engine = create_engine(
                database_url,
                pool_pre_ping=True,
                pool_recycle=3600,
                echo=False  # Установить True для отладки SQL запросов
            )

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine
        )

    def create_tables(self):
        """Создает все таблицы в базе данных."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Таблицы базы данных созданы")

    def drop_tables(self):
        """Удаляет все таблицы из базы данных."""
        Base.metadata.drop_all(bind=self.engine)
        logger.info("Таблицы базы данных удалены")

    def get_session(self) -> Session:
        """Возвращает новую сессию для работы с БД."""
        return self.SessionLocal()

    def health_check(self) -> bool:
        """Проверяет подключение к базе данных."""
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
                return True
        except SQLAlchemyError as e:
            logger.error(f"Ошибка подключения к БД: {e}")
            return False

    def dispose(self):
        """Закрывает все соединения пула."""
        self.engine.dispose()


class CertificateRepository:
    """Репозиторий для работы с метаданными сертификатов.

    Все ошибки SQLAlchemy оборачиваются в DatabaseError.
    """

    def __init__(self, db_manager: DatabaseManager):
        """
        Инициализация репозитория.

        Args:
            db_manager: Менеджер базы данных
        """
        self.db_manager = db_manager

    def create(self, owner_id: str, certificate_url: str, public_id: str,
               created_at: Optional[datetime] = None) -> Certificate:
        """
        Создает новую запись сертификата.

        Args:
            owner_id: Идентификатор владельца
            certificate_url: Ссылка на файл
            public_id: Идентификатор файла в хранилище
            created_at: Время создания (по умолчанию текущее UTC)

        Returns:
            Certificate: Созданная запись
        """
        try:
            with self.db_manager.get_session() as session:
                record = CertificateRecord(
                    owner_id=owner_id,
                    certificate_url=certificate_url,
                    public_id=public_id,
                    created_at=created_at or utc_now()
                )
                session.add(record)
                session.commit()
                return Certificate.model_validate(record)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Ошибка создания записи сертификата: {e}")

    def get(self, certificate_id: str) -> Optional[Certificate]:
        """
        Получает запись по идентификатору.

        Args:
            certificate_id: Идентификатор записи

        Returns:
            Optional[Certificate]: Запись или None
        """
        try:
            with self.db_manager.get_session() as session:
                record = session.get(CertificateRecord, certificate_id)
                return Certificate.model_validate(record) if record else None
        except SQLAlchemyError as e:
            raise DatabaseError(f"Ошибка получения сертификата {certificate_id}: {e}")

    def save(self, certificate: Certificate) -> Certificate:
        """
        Сохраняет изменения владельца и файла одной записью в БД.

        Args:
            certificate: Измененная запись

        Returns:
            Certificate: Сохраненная запись
        """
        try:
            with self.db_manager.get_session() as session:
                record = session.get(CertificateRecord, certificate.id)
                if record is None:
                    raise DatabaseError(f"Запись {certificate.id} исчезла до сохранения")

                record.owner_id = certificate.owner_id
                record.certificate_url = certificate.certificate_url
                record.public_id = certificate.public_id
                session.commit()
                return Certificate.model_validate(record)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Ошибка сохранения сертификата {certificate.id}: {e}")

    def count(self) -> int:
        """Возвращает общее количество записей."""
        try:
            with self.db_manager.get_session() as session:
                return session.query(CertificateRecord).count()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Ошибка подсчета сертификатов: {e}")

    def count_distinct_owners(self) -> int:
        """Возвращает количество различных владельцев."""
        try:
            with self.db_manager.get_session() as session:
                return session.query(func.count(distinct(CertificateRecord.owner_id))).scalar() or 0
        except SQLAlchemyError as e:
            raise DatabaseError(f"Ошибка подсчета владельцев: {e}")

    def list_page(self, offset: int, limit: int) -> List[Certificate]:
        """
        Возвращает страницу записей, новые сначала.

        Args:
            offset: Сколько записей пропустить
            limit: Размер страницы

        Returns:
            List[Certificate]: Записи страницы
        """
        try:
            with self.db_manager.get_session() as session:
                records = (
                    session.query(CertificateRecord)
                    .order_by(CertificateRecord.created_at.desc(), CertificateRecord.id.desc())
                    .offset(offset)
                    .limit(limit)
                    .all()
                )
                return [Certificate.model_validate(record) for record in records]
        except SQLAlchemyError as e:
            raise DatabaseError(f"Ошибка получения списка сертификатов: {e}")

    def list_all(self) -> List[Certificate]:
        """Возвращает все записи."""
        try:
            with self.db_manager.get_session() as session:
                return [
                    Certificate.model_validate(record)
                    for record in session.query(CertificateRecord).all()
                ]
        except SQLAlchemyError as e:
            raise DatabaseError(f"Ошибка получения сертификатов: {e}")

    def find_by_owner(self, owner_id: str) -> List[Certificate]:
        """
        Возвращает все записи владельца.

        Args:
            owner_id: Идентификатор владельца

        Returns:
            List[Certificate]: Записи владельца
        """
        try:
            with self.db_manager.get_session() as session:
                records = session.query(CertificateRecord).filter(
                    CertificateRecord.owner_id == owner_id
                ).all()
                return [Certificate.model_validate(record) for record in records]
        except SQLAlchemyError as e:
            raise DatabaseError(f"Ошибка поиска сертификатов владельца {owner_id}: {e}")

    def delete(self, certificate_id: str) -> bool:
        """
        Удаляет запись.

        Returns:
            bool: True если запись была удалена
        """
        try:
            with self.db_manager.get_session() as session:
                deleted = session.query(CertificateRecord).filter(
                    CertificateRecord.id == certificate_id
                ).delete(synchronize_session=False)
                session.commit()
                return deleted > 0
        except SQLAlchemyError as e:
            raise DatabaseError(f"Ошибка удаления сертификата {certificate_id}: {e}")

    def delete_all(self) -> int:
        """Удаляет все записи, возвращает их количество."""
        try:
            with self.db_manager.get_session() as session:
                deleted = session.query(CertificateRecord).delete(synchronize_session=False)
                session.commit()
                return deleted
        except SQLAlchemyError as e:
            raise DatabaseError(f"Ошибка массового удаления сертификатов: {e}")

    def delete_by_owner(self, owner_id: str) -> List[str]:
        """
        Удаляет все записи владельца в одной транзакции.

        Returns:
            List[str]: Идентификаторы файлов удаленных записей
        """
        try:
            with self.db_manager.get_session() as session:
                records = session.query(CertificateRecord).filter(
                    CertificateRecord.owner_id == owner_id
                ).with_for_update().all()
                handles = [record.public_id for record in records]
                for record in records:
                    session.delete(record)
                session.commit()
                return handles
        except SQLAlchemyError as e:
            raise DatabaseError(f"Ошибка удаления сертификатов владельца {owner_id}: {e}")

    def daily_counts(self, since: datetime) -> List[Tuple[int, int, int, int]]:
        """
        Группирует записи начиная с since по календарным дням (UTC).

        Args:
            since: Начало окна

        Returns:
            List[Tuple[int, int, int, int]]: (год, месяц, день, количество) по возрастанию даты
        """
        year = extract("year", CertificateRecord.created_at)
        month = extract("month", CertificateRecord.created_at)
        day = extract("day", CertificateRecord.created_at)

        try:
            with self.db_manager.get_session() as session:
                rows = (
                    session.query(year, month, day, func.count(CertificateRecord.id))
                    .filter(CertificateRecord.created_at >= since)
                    .group_by(year, month, day)
                    .order_by(year, month, day)
                    .all()
                )
                return [(int(y), int(m), int(d), int(c)) for y, m, d, c in rows]
        except SQLAlchemyError as e:
            raise DatabaseError(f"Ошибка агрегации по дням: {e}")

    def monthly_counts(self, since: datetime) -> List[Tuple[int, int, int]]:
        """
        Группирует записи начиная с since по месяцам (UTC).

        Returns:
            List[Tuple[int, int, int]]: (год, месяц, количество) по возрастанию
        """
        year = extract("year", CertificateRecord.created_at)
        month = extract("month", CertificateRecord.created_at)

        try:
            with self.db_manager.get_session() as session:
                rows = (
                    session.query(year, month, func.count(CertificateRecord.id))
                    .filter(CertificateRecord.created_at >= since)
                    .group_by(year, month)
                    .order_by(year, month)
                    .all()
                )
                return [(int(y), int(m), int(c)) for y, m, c in rows]
        except SQLAlchemyError as e:
            raise DatabaseError(f"Ошибка агрегации по месяцам: {e}")
