"""
Запросы на чтение: постраничный список, поиск, статистика и тренды.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, List, Optional, Tuple

from .database import CertificateRepository, utc_now
from .exceptions import CertificateNotFoundError, ValidationError
from .models import (
    Certificate,
    CertificatePage,
    CertificateStats,
    DailyTrendPoint,
    MonthlyTrendPoint,
    Pagination,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10

# Окна трендов: 7 календарных дней и 12 календарных месяцев, включая текущие
DAILY_TREND_DAYS = 7
MONTHLY_TREND_MONTHS = 12


def parse_positive_int(value: Any, default: int) -> int:
    """
    Разбирает параметр пагинации.

    Отсутствующие, нечисловые и неположительные значения заменяются
    значением по умолчанию, а не отклоняются.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    return number if number > 0 else default


def normalize_pagination(page: Any = None, limit: Any = None) -> Tuple[int, int]:
    """Возвращает (page, limit) с подставленными значениями по умолчанию."""
    return (
        parse_positive_int(page, DEFAULT_PAGE),
        parse_positive_int(limit, DEFAULT_PAGE_SIZE),
    )


class CertificateQueryService:
    """Чтение сертификатов из БД метаданных."""

    def __init__(self, repository: CertificateRepository,
                 clock: Optional[Callable[[], datetime]] = None):
        self.repository = repository
        self.clock = clock or utc_now

    def list_certificates(self, page: Any = None, limit: Any = None) -> CertificatePage:
        """
        Постраничный список, новые сертификаты сначала.

        Args:
            page: Номер страницы (с 1)
            limit: Размер страницы

        Returns:
            CertificatePage: Записи страницы и метаданные пагинации
        """
        page, limit = normalize_pagination(page, limit)

        total = self.repository.count()
        offset = (page - 1) * limit
        # Запрос к БД только в пределах набора: OFFSET/LIMIT не больше total
        if offset < total:
            certificates = self.repository.list_page(offset, min(limit, total - offset))
        else:
            certificates = []
        total_pages = -(-total // limit)

        return CertificatePage(
            data=certificates,
            pagination=Pagination(
                total=total,
                total_pages=total_pages,
                current_page=page,
                items_per_page=limit,
                has_next_page=page < total_pages,
                has_previous_page=page > 1
            )
        )

    def search_by_owner(self, owner_id: Optional[str]) -> List[Certificate]:
        """
        Все сертификаты владельца.

        Raises:
            ValidationError: Не указан владелец
        """
        if not owner_id or not owner_id.strip():
            raise ValidationError("ownerId is required")

        certificates = self.repository.find_by_owner(owner_id.strip())
        logger.info(f"Найдено сертификатов владельца {owner_id}: {len(certificates)}")
        return certificates

    def get_certificate(self, certificate_id: str) -> Certificate:
        """
        Сертификат по идентификатору.

        Raises:
            CertificateNotFoundError: Запись не найдена
        """
        certificate = self.repository.get(certificate_id)
        if certificate is None:
            raise CertificateNotFoundError(f"Certificate {certificate_id} not found")
        return certificate

    def get_statistics(self) -> CertificateStats:
        """Общее количество сертификатов и различных владельцев."""
        return CertificateStats(
            total_certs=self.repository.count(),
            unique_owners=self.repository.count_distinct_owners()
        )

    def daily_trend(self) -> List[DailyTrendPoint]:
        """
        Количество сертификатов по дням за последние 7 дней, включая сегодня.

        Дни без сертификатов в результат не попадают.
        """
        today = self.clock().date()
        since = datetime.combine(today - timedelta(days=DAILY_TREND_DAYS - 1), time.min)

        return [
            DailyTrendPoint(date=date(year, month, day), count=count)
            for year, month, day, count in self.repository.daily_counts(since)
        ]

    def monthly_trend(self) -> List[MonthlyTrendPoint]:
        """
        Количество сертификатов по месяцам за последние 12 месяцев,
        включая текущий. Месяцы без сертификатов в результат не попадают.
        """
        today = self.clock().date()
        months = today.year * 12 + (today.month - 1) - (MONTHLY_TREND_MONTHS - 1)
        since = datetime(months // 12, months % 12 + 1, 1)

        return [
            MonthlyTrendPoint(label=f"{month}-{year}", count=count)
            for year, month, count in self.repository.monthly_counts(since)
        ]
