"""Per-customer plumbing shared by every facade: stubs, headers and error routing."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

import google.auth.transport.requests
import grpc
from google.api_core.exceptions import GoogleAPICallError
from google.auth.credentials import Credentials

from .auth import CredentialProvider
from .config import ClientOptions, CustomerOptions
from .errors import ErrorTranslator
from .hooks import Hooks
from .service_cache import ServiceCache
from .services import GrpcServiceFactory, ServiceName, TypeResolver
from .version import DEFAULT_API_VERSION

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (GoogleAPICallError, grpc.RpcError)


class Service:
    """Owns the service cache for one customer session and routes calls through it.

    Blocking stub calls run in a worker thread; errors coming back from the
    transport are passed through the ErrorTranslator before being re-raised.
    Calls are never retried. Credentials without a usable token are refreshed
    before each call; a rejected exchange raises TokenExchangeError.
    """

    def __init__(
        self,
        client_options: ClientOptions,
        customer_options: CustomerOptions,
        hooks: Optional[Hooks] = None,
        credentials: Optional[Credentials] = None,
        cache: Optional[ServiceCache] = None,
        translator: Optional[ErrorTranslator] = None,
        types: Optional[TypeResolver] = None,
        auth_request: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.client_options = client_options
        self.customer_options = customer_options
        self.hooks = hooks or Hooks()
        self.api_version = client_options.api_version or DEFAULT_API_VERSION
        self.types = types or TypeResolver(self.api_version)
        self.translator = translator or ErrorTranslator(self.api_version)
        if cache is None and credentials is None:
            credentials = CredentialProvider(client_options).credentials_for(customer_options)
        self.auth_credentials = credentials
        self._auth_request = auth_request
        if cache is None:
            cache = ServiceCache(
                GrpcServiceFactory(credentials, self.api_version, client_options.endpoint)
            )
        self.service_cache = cache

    @property
    def credentials(self) -> dict[str, Optional[str]]:
        return {
            "customer_id": self.customer_options.customer_id,
            "login_customer_id": self.customer_options.login_customer_id,
            "linked_customer_id": self.customer_options.linked_customer_id,
        }

    @property
    def call_headers(self) -> dict[str, str]:
        headers = {"developer-token": self.client_options.developer_token}
        login_customer_id = (
            self.customer_options.login_customer_id or self.client_options.login_customer_id
        )
        if login_customer_id:
            headers["login-customer-id"] = login_customer_id
        if self.customer_options.linked_customer_id:
            headers["linked-customer-id"] = self.customer_options.linked_customer_id
        return headers

    @property
    def call_metadata(self) -> list[tuple[str, str]]:
        return list(self.call_headers.items())

    def build_typed_request(self, service: ServiceName, type_name: str, payload: dict) -> Any:
        request_type = self.types.request_type(service, type_name)
        return request_type(payload)

    def call_options(self, timeout: Optional[float] = None) -> dict[str, Any]:
        return {"metadata": self.call_metadata, "retry": None, "timeout": timeout}

    def raise_translated(self, error: BaseException) -> None:
        translated = self.translator.translate(error)
        if translated is error:
            raise error
        raise translated from error

    async def ensure_credentials(self) -> None:
        """Refresh the session credentials now if they hold no usable token."""
        credentials = self.auth_credentials
        if credentials is None or credentials.valid:
            return
        request = self._auth_request or google.auth.transport.requests.Request()
        await asyncio.to_thread(credentials.refresh, request)

    async def invoke(self, service: ServiceName, call: Callable[[Any], Any]) -> Any:
        """Run ``call(stub)`` off the event loop while holding a lease on the stub."""
        await self.ensure_credentials()
        with self.service_cache.lease(service) as stub:
            try:
                return await asyncio.to_thread(call, stub)
            except TRANSPORT_ERRORS as exc:
                self.raise_translated(exc)

    def close(self) -> None:
        self.service_cache.close()


__all__ = ["Service", "TRANSPORT_ERRORS"]
