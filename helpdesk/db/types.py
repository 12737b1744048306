"""Column types."""

from sqlalchemy.types import Text, TypeDecorator

from helpdesk.core.encryption import decrypt_secret, encrypt_secret


class EncryptedString(TypeDecorator):
    """Text column stored Fernet-encrypted; empty strings and NULL pass through."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if not value:
            return value
        return encrypt_secret(str(value))

    def process_result_value(self, value, dialect):
        if not value:
            return value
        return decrypt_secret(value)
