"""
Основной модуль бизнес-логики хранилища сертификатов.
"""

from .api import CertificateAPI
from .database import CertificateRepository, DatabaseManager
from .lifecycle import CertificateLifecycleManager
from .models import Certificate, CertificateUpload
from .queries import CertificateQueryService
from .storage import ArtifactStore, LocalArtifactStore, S3ArtifactStore, get_artifact_store

__version__ = "1.0.0"

__all__ = [
    'CertificateAPI',
    'CertificateRepository',
    'DatabaseManager',
    'CertificateLifecycleManager',
    'CertificateQueryService',
    'Certificate',
    'CertificateUpload',
    'ArtifactStore',
    'LocalArtifactStore',
    'S3ArtifactStore',
    'get_artifact_store'
]
