"""
Тесты для сборки FastAPI приложения
"""
import pytest
from fastapi.testclient import TestClient

from api_server import create_app
from config.settings import Settings


class TestApiServer:
    """Тесты приложения, собранного из настроек"""

    @pytest.fixture
    def settings(self, tmp_path):
        """Настройки с SQLite в памяти и локальным хранилищем"""
        return Settings(
            _env_file=None,
            database_url="sqlite://",
            api_key="server-key",
            artifact_backend="local",
            artifacts_path=tmp_path / "artifacts",
            log_file=tmp_path / "logs" / "api.log"
        )

    @pytest.fixture
    def client(self, settings):
        with TestClient(create_app(settings)) as client:
            yield client

    def test_liveness(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {"message": "API running"}

    def test_health(self, client):
        """БД и локальное хранилище доступны"""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["database"]["status"] == "healthy"
        assert data["components"]["artifact_store"]["status"] == "healthy"

    def test_api_mounted(self, client):
        """Роуты сертификатов доступны под /api"""
        response = client.get("/api/certificates")

        assert response.status_code == 200
        assert response.json()["pagination"]["total"] == 0

    def test_upload_through_server(self, client, settings):
        """Загрузка через собранное приложение сохраняет файл на диск"""
        response = client.post(
            "/api/certificates",
            files=[("certificate", ("a.pdf", b"%PDF-1.4", "application/pdf"))],
            data={"ownerId": "student-1"},
            headers={"Authorization": "Bearer server-key"}
        )

        assert response.status_code == 200
        public_id = response.json()["certificates"][0]["publicId"]
        assert (settings.artifacts_path / public_id).read_bytes() == b"%PDF-1.4"

    def test_admin_route_requires_configured_key(self, client):
        response = client.get("/api/certificates/stats", headers={"Authorization": "Bearer other"})

        assert response.status_code == 401
