"""
Тесты для API
"""
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from certstore.api import CertificateAPI
from tests.conftest import FIXED_NOW

AUTH = {"Authorization": "Bearer test-api-key"}


def pdf(name, content=b"%PDF-1.4"):
    """Файл для multipart запроса"""
    return ("certificate", (name, content, "application/pdf"))


class TestCertificateAPI:
    """Тесты для API сертификатов"""

    @pytest.fixture
    def api(self, repository, artifact_store):
        """Фикстура для API"""
        return CertificateAPI(repository, artifact_store, "test-api-key", clock=lambda: FIXED_NOW)

    @pytest.fixture
    def client(self, api):
        """Тестовый клиент"""
        return TestClient(api.app)

    @pytest.fixture
    def uploaded(self, client):
        """Два загруженных сертификата владельца student-1"""
        response = client.post(
            "/certificates",
            files=[pdf("a.pdf"), pdf("b.pdf")],
            data={"ownerId": "student-1"},
            headers=AUTH
        )
        return response.json()["certificates"]

    def test_liveness(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {"message": "API running"}

    def test_upload_success(self, client, artifact_store):
        """Пакетная загрузка"""
        response = client.post(
            "/certificates",
            files=[pdf("a.pdf"), pdf("b.pdf")],
            data={"ownerId": "student-1"},
            headers=AUTH
        )

        assert response.status_code == 200
        data = response.json()
        assert data["failure"] is None
        assert len(data["certificates"]) == 2
        cert = data["certificates"][0]
        assert cert["ownerId"] == "student-1"
        assert cert["publicId"] in artifact_store.blobs
        assert cert["certificateUrl"].endswith(cert["publicId"])
        assert "createdAt" in cert

    def test_upload_partial_failure(self, client, artifact_store):
        """Ошибка на втором файле: первый сохранен, ошибка в ответе"""
        artifact_store.fail_uploads = {2}

        response = client.post(
            "/certificates",
            files=[pdf("a.pdf"), pdf("b.pdf"), pdf("c.pdf")],
            data={"ownerId": "student-1"},
            headers=AUTH
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["certificates"]) == 1
        assert data["failure"]["index"] == 2
        assert data["failure"]["filename"] == "b.pdf"

    def test_upload_first_failure(self, client, artifact_store):
        """Ошибка на первом файле: 500 с описанием, без стека"""
        artifact_store.fail_uploads = {1}

        response = client.post(
            "/certificates", files=[pdf("a.pdf")], data={"ownerId": "student-1"}, headers=AUTH
        )

        assert response.status_code == 500
        data = response.json()
        assert data["message"] == "Artifact upload failed"
        assert "Upload 1 failed" in data["error"]
        assert "stack" not in data

    def test_stack_in_debug_mode(self, repository, artifact_store):
        """Стек ошибки только в режиме разработки"""
        artifact_store.fail_uploads = {1}
        client = TestClient(CertificateAPI(repository, artifact_store, "test-api-key", debug=True).app)

        response = client.post(
            "/certificates", files=[pdf("a.pdf")], data={"ownerId": "student-1"}, headers=AUTH
        )

        assert response.status_code == 500
        assert "Traceback" in response.json()["stack"]

    def test_upload_without_files(self, client):
        response = client.post("/certificates", data={"ownerId": "student-1"}, headers=AUTH)

        assert response.status_code == 400
        assert response.json()["message"] == "No files uploaded"

    def test_upload_too_many_files(self, client):
        response = client.post(
            "/certificates",
            files=[pdf(f"{i}.pdf") for i in range(11)],
            data={"ownerId": "student-1"},
            headers=AUTH
        )

        assert response.status_code == 400

    def test_upload_without_owner(self, client):
        response = client.post("/certificates", files=[pdf("a.pdf")], headers=AUTH)

        assert response.status_code == 400
        assert response.json()["message"] == "ownerId is required"

    def test_unauthorized_request(self, client):
        """Запрос без ключа"""
        response = client.post("/certificates", files=[pdf("a.pdf")], data={"ownerId": "student-1"})

        assert response.status_code == 401
        assert response.json()["message"] == "No token, authorization denied"

    def test_invalid_token(self, client):
        response = client.get("/certificates/stats", headers={"Authorization": "Bearer wrong"})

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token"

    def test_non_ascii_token(self, client):
        """Токен с не-ASCII символами отклоняется как неверный"""
        response = client.get(
            "/certificates/stats",
            headers={"Authorization": "Bearer clé".encode("latin-1")}
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token"

    @pytest.mark.parametrize("method,path", [
        ("delete", "/certificates"),
        ("get", "/certificates/stats"),
        ("get", "/certificates/trends/daily"),
        ("get", "/certificates/trends/monthly"),
        ("get", "/certificates/storage-test"),
        ("delete", "/certificates/owner/student-1"),
        ("delete", "/certificates/some-id"),
    ])
    def test_admin_routes_require_key(self, client, method, path):
        response = getattr(client, method)(path)

        assert response.status_code == 401

    def test_list_certificates(self, client, uploaded):
        """Публичный постраничный список"""
        response = client.get("/certificates", params={"page": "1", "limit": "1"})

        assert response.status_code == 200
        data = response.json()
        assert len(data["data"]) == 1
        assert data["pagination"] == {
            "total": 2,
            "totalPages": 2,
            "currentPage": 1,
            "itemsPerPage": 1,
            "hasNextPage": True,
            "hasPreviousPage": False
        }

    def test_list_invalid_params(self, client):
        response = client.get("/certificates", params={"page": "abc", "limit": "-1"})

        assert response.status_code == 200
        assert response.json()["pagination"]["itemsPerPage"] == 10

    def test_list_huge_page(self, client, uploaded):
        """Номер страницы за пределами целых чисел БД дает пустую страницу"""
        response = client.get("/certificates", params={"page": str(10 ** 20), "limit": "10"})

        assert response.status_code == 200
        data = response.json()
        assert data["data"] == []
        assert data["pagination"]["total"] == 2
        assert data["pagination"]["hasNextPage"] is False

    def test_search(self, client, uploaded):
        response = client.get("/certificates/search", params={"ownerId": "student-1"})

        assert response.status_code == 200
        assert sorted(cert["id"] for cert in response.json()) == sorted(cert["id"] for cert in uploaded)

    def test_search_requires_owner(self, client):
        response = client.get("/certificates/search")

        assert response.status_code == 400
        assert response.json() == {"message": "ownerId is required"}

    def test_download_redirect(self, client, uploaded):
        cert = uploaded[0]

        response = client.get(f"/certificates/download/{cert['id']}", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == cert["certificateUrl"]

    def test_download_not_found(self, client):
        response = client.get("/certificates/download/missing-id", follow_redirects=False)

        assert response.status_code == 404
        assert response.json() == {"message": "Certificate not found"}

    def test_update_owner(self, client, uploaded):
        cert = uploaded[0]

        response = client.put(f"/certificates/{cert['id']}", data={"ownerId": "student-2"}, headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["certificate"]["ownerId"] == "student-2"
        assert data["certificate"]["publicId"] == cert["publicId"]
        assert data["orphanedPublicId"] is None

    def test_update_file(self, client, uploaded, artifact_store):
        cert = uploaded[0]

        response = client.put(
            f"/certificates/{cert['id']}", files=[pdf("new.pdf", b"new")], headers=AUTH
        )

        assert response.status_code == 200
        new_public_id = response.json()["certificate"]["publicId"]
        assert artifact_store.blobs[new_public_id] == b"new"
        assert cert["publicId"] not in artifact_store.blobs

    def test_update_without_changes(self, client, uploaded):
        response = client.put(f"/certificates/{uploaded[0]['id']}", data={}, headers=AUTH)

        assert response.status_code == 400

    def test_update_not_found(self, client):
        response = client.put("/certificates/missing-id", data={"ownerId": "x"}, headers=AUTH)

        assert response.status_code == 404

    def test_delete_certificate(self, client, uploaded, repository, artifact_store):
        cert = uploaded[0]

        response = client.delete(f"/certificates/{cert['id']}", headers=AUTH)

        assert response.status_code == 200
        assert response.json()["message"] == "Certificate completely deleted from both systems"
        assert repository.get(cert["id"]) is None
        assert cert["publicId"] not in artifact_store.blobs

    def test_delete_certificate_rolled_back(self, client, uploaded, repository, artifact_store):
        """Файл не удален: запись сохранена, ответ 500"""
        cert = uploaded[0]
        artifact_store.fail_deletes = {cert["publicId"]}

        response = client.delete(f"/certificates/{cert['id']}", headers=AUTH)

        assert response.status_code == 500
        assert response.json()["message"] == "Deletion failed - rolled back"
        assert repository.get(cert["id"]) is not None
        assert cert["publicId"] in artifact_store.blobs

    def test_delete_certificate_not_found(self, client):
        response = client.delete("/certificates/missing-id", headers=AUTH)

        assert response.status_code == 404

    def test_delete_all(self, client, uploaded, repository):
        response = client.delete("/certificates", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Bulk deletion completed"
        assert data["artifactStore"]["attempted"] == 2
        assert data["artifactStore"]["successful"] == 2
        assert data["artifactStore"]["failed"] == 0
        assert data["metadataStore"]["deletedCount"] == 2
        assert repository.count() == 0

    def test_delete_owner(self, client, uploaded, artifact_store):
        response = client.delete("/certificates/owner/student-1", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["ownerId"] == "student-1"
        assert data["deletedCertificates"] == 2
        assert sorted(data["retainedArtifacts"]) == sorted(cert["publicId"] for cert in uploaded)
        assert len(artifact_store.blobs) == 2

    def test_stats(self, client, uploaded):
        response = client.get("/certificates/stats", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"totalCerts": 2, "uniqueOwners": 1}

    def test_trends(self, client, repository):
        repository.create("student-1", "https://cdn.test/a", "a", datetime(2024, 3, 14, 10, 0))
        repository.create("student-1", "https://cdn.test/b", "b", datetime(2024, 3, 15, 10, 0))

        daily = client.get("/certificates/trends/daily", headers=AUTH)
        monthly = client.get("/certificates/trends/monthly", headers=AUTH)

        assert daily.status_code == 200
        assert daily.json() == [
            {"date": "2024-03-14", "count": 1},
            {"date": "2024-03-15", "count": 1}
        ]
        assert monthly.json() == [{"label": "3-2024", "count": 2}]

    def test_storage_test(self, client):
        response = client.get("/certificates/storage-test", headers=AUTH)

        assert response.status_code == 200
        assert response.json()["details"]["backend"] == "memory"

    def test_unknown_route_envelope(self, client):
        response = client.get("/unknown")

        assert response.status_code == 404
        assert "message" in response.json()
