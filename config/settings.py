"""
Настройки приложения, загружаемые из переменных окружения.
"""

import logging
from pathlib import Path
from typing import List, Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings


ARTIFACT_BACKENDS = ("s3", "local")


class Settings(BaseSettings):
    """Настройки приложения."""

    # Настройки базы данных метаданных
    database_url: str = Field(..., description="URL подключения к базе данных")

    # Настройки доступа
    api_key: str = Field(..., description="Ключ доступа к административным операциям")

    # Настройки хранилища файлов
    artifact_backend: str = Field(default="s3", description="Тип хранилища файлов: s3 или local")
    s3_bucket: Optional[str] = Field(default=None, description="Имя бакета")
    s3_endpoint_url: Optional[str] = Field(default=None, description="Адрес S3-совместимого хранилища")
    s3_region: Optional[str] = Field(default=None, description="Регион бакета")
    s3_access_key: Optional[str] = Field(default=None, description="Ключ доступа к хранилищу")
    s3_secret_key: Optional[str] = Field(default=None, description="Секретный ключ хранилища")
    s3_key_prefix: str = Field(default="certificates", description="Префикс ключей объектов")
    artifacts_public_url: Optional[str] = Field(
        default=None,
        description="Публичный базовый URL для ссылок на файлы"
    )
    artifacts_path: Path = Field(
        default=Path("./artifacts"),
        description="Директория локального хранилища файлов"
    )

    # Настройки логирования
    log_level: str = Field(default="INFO", description="Уровень логирования")
    log_file: Path = Field(default=Path("./logs/api.log"), description="Путь к файлу логов")

    # Настройки приложения
    environment: str = Field(default="production", description="Окружение: production или development")
    cors_origins: str = Field(default="*", description="Разрешенные источники CORS через запятую")

    @property
    def debug(self) -> bool:
        """Включен ли режим разработки (стек ошибок в ответах API)."""
        return self.environment.lower() == "development"

    @property
    def cors_origins_list(self) -> List[str]:
        """Возвращает список разрешенных источников CORS."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @validator('artifact_backend')
    def validate_artifact_backend(cls, v):
        """Валидация типа хранилища."""
        backend = v.lower().strip()
        if backend not in ARTIFACT_BACKENDS:
            raise ValueError(f"Неизвестный тип хранилища: {v}. Допустимо: {', '.join(ARTIFACT_BACKENDS)}")
        return backend

    @validator('log_level')
    def validate_log_level(cls, v):
        """Валидация уровня логирования."""
        level = v.upper().strip()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Некорректный уровень логирования: {v}")
        return level

    @validator('log_file')
    def validate_paths(cls, v):
        """Создает родительскую директорию файла логов."""
        if isinstance(v, str):
            v = Path(v)

        v.parent.mkdir(parents=True, exist_ok=True)

        return v

    class Config:
        """Конфигурация настроек."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Игнорировать дополнительные поля из .env


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Возвращает объект настроек, создавая его при первом обращении."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def load_settings_from_file(env_file: str = ".env") -> Settings:
    """
    Загружает настройки из указанного файла.

    Args:
        env_file: Путь к файлу с переменными окружения

    Returns:
        Settings: Объект настроек
    """
    return Settings(_env_file=env_file)


def setup_logging(settings: Settings) -> None:
    """
    Настраивает логирование в файл и в консоль.

    Args:
        settings: Настройки приложения
    """
    settings.log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(settings.log_file),
            logging.StreamHandler()
        ]
    )
