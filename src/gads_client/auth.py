"""Credential providers for the Google Ads API.

Two mutually exclusive flows are supported per client:

* refresh token: a standard OAuth user credential, refreshed by google-auth;
* service account: a self-signed JWT assertion exchanged at the token
  endpoint for a bearer token (RFC 7523).
"""
from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

from google.auth import credentials as ga_credentials
from google.auth import crypt, jwt
from google.auth.exceptions import TransportError
from google.oauth2 import credentials as oauth2_credentials

from .config import ClientOptions, CustomerOptions
from .errors import AuthenticationConfigError, TokenExchangeError

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
ADWORDS_SCOPE = "https://www.googleapis.com/auth/adwords"
JWT_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600
REQUIRED_KEY_FIELDS = ("client_email", "private_key")


def parse_service_account_key(document: str | bytes | Mapping[str, Any]) -> dict:
    """Parse and sanity check a service account key document."""
    if isinstance(document, Mapping):
        info = dict(document)
    else:
        try:
            info = json.loads(document)
        except (TypeError, ValueError) as exc:
            raise AuthenticationConfigError("Service account key is not valid JSON") from exc
    if not isinstance(info, dict):
        raise AuthenticationConfigError("Service account key must be a JSON object")
    missing = [name for name in REQUIRED_KEY_FIELDS if not info.get(name)]
    if missing:
        raise AuthenticationConfigError(
            "Service account key is missing fields: {}".format(", ".join(missing))
        )
    return info


def _utcnow() -> datetime:
    # google-auth compares expiry as naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ServiceAccountJWTCredentials(ga_credentials.Credentials):
    """Bearer credentials obtained by exchanging a signed JWT assertion.

    Refresh is single-flight: concurrent callers wait on one exchange and
    reuse its token instead of issuing their own.
    """

    def __init__(
        self,
        info: Mapping[str, Any],
        scopes: Sequence[str] = (ADWORDS_SCOPE,),
        token_uri: str = TOKEN_URI,
    ) -> None:
        super().__init__()
        self.service_account_email = info["client_email"]
        self._scopes = tuple(scopes)
        self._token_uri = token_uri
        try:
            self._signer = crypt.RSASigner.from_service_account_info(info)
        except (ValueError, TypeError, KeyError, IndexError) as exc:
            raise AuthenticationConfigError(
                f"Unable to load the private key for {self.service_account_email}"
            ) from exc
        self._refresh_lock = threading.Lock()
        self.exchange_count = 0

    @classmethod
    def from_service_account_key(
        cls, document: str | bytes | Mapping[str, Any], **kwargs
    ) -> "ServiceAccountJWTCredentials":
        return cls(parse_service_account_key(document), **kwargs)

    @property
    def scopes(self) -> tuple[str, ...]:
        return self._scopes

    def build_assertion(self, issued_at: int | None = None) -> str:
        issued_at = int(time.time()) if issued_at is None else issued_at
        payload = {
            "iss": self.service_account_email,
            "sub": self.service_account_email,
            "aud": self._token_uri,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
            "scope": " ".join(self._scopes),
        }
        try:
            assertion = jwt.encode(self._signer, payload)
        except (ValueError, TypeError) as exc:
            raise TokenExchangeError(
                f"Unable to sign the JWT assertion for {self.service_account_email}"
            ) from exc
        return assertion.decode("ascii") if isinstance(assertion, bytes) else assertion

    def refresh(self, request) -> None:
        with self._refresh_lock:
            if self.valid:
                return
            self._exchange(request)

    def _exchange(self, request) -> None:
        body = urlencode({"grant_type": JWT_GRANT_TYPE, "assertion": self.build_assertion()})
        try:
            response = request(
                url=self._token_uri,
                method="POST",
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                body=body,
            )
        except TransportError as exc:
            raise TokenExchangeError(f"Token endpoint {self._token_uri} is unreachable") from exc

        data = response.data.decode("utf-8") if isinstance(response.data, bytes) else response.data
        if not 200 <= response.status < 300:
            raise TokenExchangeError(
                f"Token exchange failed with HTTP {response.status}: {data}"
            )
        try:
            payload = json.loads(data)
        except ValueError as exc:
            raise TokenExchangeError("Token endpoint returned a non-JSON body") from exc
        token = payload.get("access_token")
        if not token:
            raise TokenExchangeError("Token endpoint response did not include an access_token")

        expires_in = int(payload.get("expires_in", ASSERTION_LIFETIME_SECONDS))
        self.token = token
        self.expiry = _utcnow() + timedelta(seconds=expires_in)
        self.exchange_count += 1
        logger.info(
            "Obtained access token for %s expiring in %ss",
            self.service_account_email,
            expires_in,
        )


def refresh_token_credentials(
    options: ClientOptions, refresh_token: str | None
) -> oauth2_credentials.Credentials:
    if not refresh_token:
        raise AuthenticationConfigError(
            "A refresh token is required when no service account key is configured"
        )
    return oauth2_credentials.Credentials(
        token=None,
        refresh_token=refresh_token,
        token_uri=TOKEN_URI,
        client_id=options.client_id,
        client_secret=options.client_secret,
        scopes=[ADWORDS_SCOPE],
    )


class CredentialProvider:
    """Selects the credential flow once, when the client is constructed."""

    def __init__(self, options: ClientOptions) -> None:
        self.options = options
        self.service_account: ServiceAccountJWTCredentials | None = None
        if options.service_account_key:
            self.service_account = ServiceAccountJWTCredentials.from_service_account_key(
                options.service_account_key
            )

    @property
    def uses_service_account(self) -> bool:
        return self.service_account is not None

    def credentials_for(self, customer_options: CustomerOptions) -> ga_credentials.Credentials:
        if self.service_account is not None:
            return self.service_account
        return refresh_token_credentials(self.options, customer_options.refresh_token)


__all__ = [
    "ADWORDS_SCOPE",
    "CredentialProvider",
    "ServiceAccountJWTCredentials",
    "TOKEN_URI",
    "parse_service_account_key",
    "refresh_token_credentials",
]
