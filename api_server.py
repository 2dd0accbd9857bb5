"""
FastAPI сервер для API сертификатов
"""
import logging
import os
from datetime import datetime
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import Settings, get_settings, setup_logging
from certstore.api import CertificateAPI
from certstore.database import CertificateRepository, DatabaseManager
from certstore.exceptions import StorageError
from certstore.storage import get_artifact_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""
    logger.info("Запуск API сервера...")

    app.state.db_manager.create_tables()
    logger.info("Подключение к БД установлено")

    yield

    logger.info("Остановка API сервера...")
    app.state.db_manager.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Создание FastAPI приложения"""
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title="Certificate Store API",
        description="API для управления сертификатами студентов",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Настройка хранилищ
    db_manager = DatabaseManager(settings.database_url)
    repository = CertificateRepository(db_manager)
    artifact_store = get_artifact_store(settings)

    certificate_api = CertificateAPI(
        repository,
        artifact_store,
        api_key=settings.api_key,
        debug=settings.debug
    )
    app.state.db_manager = db_manager
    app.state.certificate_api = certificate_api

    @app.get("/", tags=["monitoring"])
    def liveness():
        """Проверка, что API запущен"""
        return {"message": "API running"}

    @app.get("/health", tags=["monitoring"])
    def health_check():
        """Проверка здоровья API, БД и хранилища файлов"""
        health_status = {
            "status": "checking",
            "timestamp": datetime.now().isoformat(),
            "components": {
                "api": {"status": "healthy", "message": "API is running"}
            }
        }

        if db_manager.health_check():
            health_status["components"]["database"] = {
                "status": "healthy",
                "message": "Database connection is active"
            }
        else:
            health_status["components"]["database"] = {
                "status": "unhealthy",
                "message": "Database is not reachable"
            }

        try:
            details = artifact_store.check_connection()
            health_status["components"]["artifact_store"] = {
                "status": "healthy",
                "message": f"Artifact store ({details.get('backend')}) is reachable"
            }
        except StorageError as e:
            health_status["components"]["artifact_store"] = {
                "status": "unhealthy",
                "message": f"Artifact store error: {e}"
            }

        all_healthy = all(
            comp.get("status") == "healthy"
            for comp in health_status["components"].values()
        )
        health_status["status"] = "healthy" if all_healthy else "unhealthy"

        return JSONResponse(content=health_status, status_code=200 if all_healthy else 503)

    # Подключение роутов от CertificateAPI
    app.mount("/api", certificate_api.app)

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api_server:create_app",
        factory=True,
        host="0.0.0.0",
        port=int(os.getenv('PORT', '5000')),
        reload=os.getenv('ENVIRONMENT') == 'development'
    )
