"""Application exceptions and scrubbing of secrets from error payloads."""

import re
from typing import Any

from fastapi import status

# Plaid access tokens look like access-sandbox-8ab976e6-64bc-4b38-98f7-731e7a349970
ACCESS_TOKEN_PATTERN = re.compile(r"access-(?:sandbox|development|production)-[0-9a-fA-F-]+")
SECRET_KEYS = {"access_token", "accesstoken", "public_token", "secret", "client_id"}
REDACTED = "[REDACTED]"


class BankBridgeError(Exception):
    """Base error carrying the HTTP status and optional details for the response body."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Any = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code


class InputError(BankBridgeError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(BankBridgeError):
    status_code = status.HTTP_404_NOT_FOUND


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__("User not found")
        self.user_id = user_id


class BankNotFoundError(NotFoundError):
    def __init__(self, institution_id: str):
        super().__init__("Bank not found")
        self.institution_id = institution_id


class NoBanksConnectedError(BankBridgeError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, user_id: str):
        super().__init__("No banks connected. Please link your bank account first.")
        self.user_id = user_id


class ProviderError(BankBridgeError):
    """
    Plaid rejected or failed a call.

    `details` is Plaid's error body with credentials scrubbed, otherwise
    unchanged. The HTTP status Plaid answered with is kept in `provider_status`.
    """

    def __init__(self, message: str, details: Any = None, provider_status: int | None = None):
        super().__init__(message, details)
        self.provider_status = provider_status


class ProviderConfigurationError(BankBridgeError):
    """Plaid credentials are not configured."""


def scrub_secrets(payload: Any, secrets: tuple[str, ...] = ()) -> Any:
    """
    Return a copy of `payload` with credentials removed.

    Keys naming a credential are redacted, known secret values are replaced
    wherever they appear in strings, and anything shaped like a Plaid access
    token is redacted.
    """
    if isinstance(payload, dict):
        return {
            key: REDACTED if str(key).lower() in SECRET_KEYS else scrub_secrets(value, secrets)
            for key, value in payload.items()
        }
    if isinstance(payload, (list, tuple)):
        return [scrub_secrets(item, secrets) for item in payload]
    if isinstance(payload, str):
        for secret in secrets:
            if secret:
                payload = payload.replace(secret, REDACTED)
        return ACCESS_TOKEN_PATTERN.sub(REDACTED, payload)
    return payload
