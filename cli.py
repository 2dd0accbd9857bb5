"""
CLI интерфейс для администрирования хранилища сертификатов
"""
import argparse
import logging
import sys

from config.settings import get_settings, setup_logging
from certstore.database import CertificateRepository, DatabaseManager
from certstore.exceptions import CertificateError, StorageError
from certstore.lifecycle import CertificateLifecycleManager
from certstore.queries import CertificateQueryService
from certstore.storage import get_artifact_store


class CertificateCLI:
    """CLI интерфейс для работы с сертификатами"""

    def __init__(self, settings=None):
        self.settings = settings
        self.db_manager = None
        self.repository = None
        self.artifact_store = None
        self.lifecycle = None
        self.queries = None
        self.logger = logging.getLogger(__name__)

    def setup(self):
        """Настройка логирования и хранилищ по настройкам окружения"""
        self.settings = self.settings or get_settings()
        setup_logging(self.settings)

        db_manager = DatabaseManager(self.settings.database_url)
        self.attach(CertificateRepository(db_manager), get_artifact_store(self.settings))

    def attach(self, repository, artifact_store):
        """Подключение репозитория и хранилища файлов"""
        self.repository = repository
        self.db_manager = repository.db_manager
        self.artifact_store = artifact_store
        self.lifecycle = CertificateLifecycleManager(repository, artifact_store)
        self.queries = CertificateQueryService(repository)

    def init_db(self, args):
        """Создание таблиц"""
        self.db_manager.create_tables()
        print("✓ Таблицы базы данных созданы")

    def list_certificates(self, args):
        """Постраничный список сертификатов"""
        page = self.queries.list_certificates(args.page, args.limit)
        pagination = page.pagination

        print(f"Сертификаты: страница {pagination.current_page} из {pagination.total_pages} "
              f"(всего {pagination.total})")
        if not page.data:
            print("  Сертификаты не найдены")
        for cert in page.data:
            print(f"  {cert.id}  {cert.owner_id}  {cert.created_at.strftime('%d.%m.%Y %H:%M')}  "
                  f"{cert.certificate_url}")

    def search_certificates(self, args):
        """Сертификаты владельца"""
        certificates = self.queries.search_by_owner(args.owner_id)

        if not certificates:
            print(f"✗ Сертификаты владельца {args.owner_id} не найдены")
            return

        print(f"✓ Найдено сертификатов владельца {args.owner_id}: {len(certificates)}")
        for cert in certificates:
            print(f"  {cert.id}  {cert.certificate_url}")

    def show_statistics(self, args):
        """Общая статистика"""
        stats = self.queries.get_statistics()
        print("Статистика:")
        print(f"  Сертификатов: {stats.total_certs}")
        print(f"  Владельцев: {stats.unique_owners}")

    def show_trends(self, args):
        """Тренды по дням или месяцам"""
        if args.period == 'daily':
            points = [(point.date.strftime('%d.%m.%Y'), point.count) for point in self.queries.daily_trend()]
        else:
            points = [(point.label, point.count) for point in self.queries.monthly_trend()]

        if not points:
            print("  Нет сертификатов за период")
        for label, count in points:
            print(f"  {label}: {count}")

    def delete_all(self, args):
        """Удаление всех сертификатов"""
        if not args.yes:
            print("✗ Для удаления всех сертификатов укажите --yes")
            sys.exit(1)

        report = self.lifecycle.delete_all_certificates()
        summary = report.artifact_store

        print(f"✓ Удалено записей: {report.metadata_store.deleted_count}")
        print(f"  Файлы: попыток {summary.attempted}, удалено {summary.successful}, ошибок {summary.failed}")
        for failure in summary.errors:
            print(f"  ✗ {failure.public_id}: {failure.error}")

    def storage_test(self, args):
        """Проверка хранилища файлов"""
        try:
            details = self.artifact_store.check_connection()
        except StorageError as e:
            print(f"✗ Хранилище недоступно: {e}")
            sys.exit(1)

        print("✓ Хранилище доступно:")
        for key, value in details.items():
            print(f"  {key}: {value}")

    def build_parser(self) -> argparse.ArgumentParser:
        """Парсер аргументов командной строки"""
        parser = argparse.ArgumentParser(
            description="Администрирование хранилища сертификатов",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Примеры использования:
  %(prog)s init-db
  %(prog)s list --page 2 --limit 20
  %(prog)s search student-42
  %(prog)s trends monthly
  %(prog)s delete-all --yes
            """
        )

        subparsers = parser.add_subparsers(dest='command', help='Доступные команды')

        subparsers.add_parser('init-db', help='Создание таблиц базы данных')

        list_parser = subparsers.add_parser('list', help='Список сертификатов')
        list_parser.add_argument('--page', default=None, help='Номер страницы')
        list_parser.add_argument('--limit', default=None, help='Размер страницы')

        search_parser = subparsers.add_parser('search', help='Сертификаты владельца')
        search_parser.add_argument('owner_id', help='Идентификатор владельца')

        subparsers.add_parser('stats', help='Общая статистика')

        trends_parser = subparsers.add_parser('trends', help='Тренды создания сертификатов')
        trends_parser.add_argument('period', choices=['daily', 'monthly'], help='Период группировки')

        delete_parser = subparsers.add_parser('delete-all', help='Удаление всех сертификатов')
        delete_parser.add_argument('--yes', action='store_true', help='Подтверждение удаления')

        subparsers.add_parser('storage-test', help='Проверка хранилища файлов')

        return parser

    def run(self, args):
        """Выполнение команды"""
        commands = {
            'init-db': self.init_db,
            'list': self.list_certificates,
            'search': self.search_certificates,
            'stats': self.show_statistics,
            'trends': self.show_trends,
            'delete-all': self.delete_all,
            'storage-test': self.storage_test,
        }

        try:
            commands[args.command](args)
        except CertificateError as e:
            print(f"✗ Ошибка: {e}")
            self.logger.error(f"Ошибка выполнения команды {args.command}: {e}")
            sys.exit(1)

    def main(self, argv=None):
        """Главная функция CLI"""
        parser = self.build_parser()
        args = parser.parse_args(argv)

        if not args.command:
            parser.print_help()
            return

        if self.repository is None:
            self.setup()
        self.run(args)


def run_cli():
    """Точка входа консольной команды"""
    CertificateCLI().main()


if __name__ == '__main__':
    run_cli()
