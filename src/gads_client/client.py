"""Top-level client: holds application credentials and opens customer sessions."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Callable, Optional

import google.auth.transport.requests
from pydantic import ValidationError

from .auth import CredentialProvider
from .config import ClientOptions, CustomerOptions
from .customer import Customer
from .errors import ConfigurationError
from .hooks import Hooks

logger = logging.getLogger(__name__)


def _coerce(model, value):
    if isinstance(value, model):
        return value
    try:
        return model(**value)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid {model.__name__}: {exc}") from exc


class Client:
    """Google Ads API client.

    The credential flow is fixed at construction: a service account key in
    the options selects the JWT exchange flow, otherwise each customer
    session authenticates with its own refresh token. A malformed key fails
    here, before any network call.
    """

    def __init__(
        self,
        options: ClientOptions | Mapping[str, Any],
        hooks: Optional[Hooks] = None,
        auth_request: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.options = _coerce(ClientOptions, options)
        self.hooks = hooks or Hooks()
        self.auth_request = auth_request
        self.credential_provider = CredentialProvider(self.options)
        if self.credential_provider.uses_service_account:
            logger.info(
                "Using service account %s",
                self.credential_provider.service_account.service_account_email,
            )

    def customer(
        self,
        customer_options: CustomerOptions | Mapping[str, Any],
        hooks: Optional[Hooks] = None,
    ) -> Customer:
        options = _coerce(CustomerOptions, customer_options)
        credentials = self.credential_provider.credentials_for(options)
        return Customer(
            self.options,
            options,
            hooks=hooks or self.hooks,
            credentials=credentials,
            auth_request=self.auth_request,
        )

    async def authenticate(self) -> None:
        """Exchange the service account assertion now instead of on the first call."""
        credentials = self.credential_provider.service_account
        if credentials is None:
            return
        request = self.auth_request or google.auth.transport.requests.Request()
        await asyncio.to_thread(credentials.refresh, request)

    async def list_accessible_customers(self, refresh_token: Optional[str] = None) -> Any:
        """List the customer resource names reachable with the given credentials."""
        customer = self.customer(CustomerOptions(customer_id="", refresh_token=refresh_token))
        try:
            return await customer.list_accessible_customers()
        finally:
            customer.close()


__all__ = ["Client"]
