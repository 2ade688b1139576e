import os

import firebase_admin
from firebase_admin import auth, credentials

from src.config.settings import settings
from src.shared.utils import get_logger

logger = get_logger(__name__)


def initialize_firebase():
    """Initialise the identity provider used to verify bearer tokens."""
    if firebase_admin._apps:
        return

    service_account_path = settings.GOOGLE_APPLICATION_CREDENTIALS
    if not service_account_path or not os.path.exists(service_account_path):
        logger.warning(
            "GOOGLE_APPLICATION_CREDENTIALS not available, token verification will fail"
        )
        return

    cred = credentials.Certificate(service_account_path)
    firebase_admin.initialize_app(cred)


if os.getenv("TESTING") != "True":
    initialize_firebase()

__all__ = ["auth", "initialize_firebase"]
