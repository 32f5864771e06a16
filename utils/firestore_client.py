import os
from typing import Optional

from google.cloud import firestore
from google.oauth2 import service_account

from utils.logging import get_logger

logger = get_logger(__name__)


def create_firestore_client(
    creds_path: Optional[str] = None, project_id: Optional[str] = None
) -> Optional[firestore.Client]:
    """Создаёт клиент Firestore; при ошибке возвращает None, вызывающий выбирает другой бэкенд."""
    creds_path = creds_path or os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    try:
        if creds_path:
            credentials = service_account.Credentials.from_service_account_file(creds_path)
            return firestore.Client(credentials=credentials, project=project_id or credentials.project_id)
        return firestore.Client(project=project_id)
    except Exception as e:
        logger.error("Firestore init failed", extra={"error": str(e)})
        return None
