import logging

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.types import Text, TypeDecorator

from config import settings

logger = logging.getLogger(__name__)

_warned = False


def _build_fernet(key):
    global _warned
    if not key:
        if not _warned:
            logger.warning("DB_ENCRYPTION_KEY is not set; free-text columns are stored in plain text.")
            _warned = True
        return None
    return Fernet(key)


class EncryptedString(TypeDecorator):
    """
    Encrypts values before they are written and decrypts them on load,
    so the database file only holds ciphertext for private notes
    (project descriptions, task comments).
    """
    impl = Text  # ciphertext is longer than the plain text
    cache_ok = True

    def __init__(self, key=None, **kwargs):
        super().__init__(**kwargs)
        self.fernet = _build_fernet(key if key is not None else settings.db_encryption_key)

    def process_bind_param(self, value, dialect):
        if value is not None and self.fernet:
            if isinstance(value, str):
                value = value.encode("utf-8")
            return self.fernet.encrypt(value).decode("utf-8")
        return value

    def process_result_value(self, value, dialect):
        if value is not None and self.fernet:
            try:
                return self.fernet.decrypt(value.encode("utf-8")).decode("utf-8")
            except InvalidToken:
                # Rows written before a key was configured come back as-is
                logger.debug("Could not decrypt column value; returning stored text")
                return value
        return value
