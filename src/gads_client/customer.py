"""Customer facade: the public query and mutate operations for one account."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any, Optional

from .errors import MutateResult
from .request_builder import (
    MutateOperation,
    build_mutate_operations,
    build_mutate_request,
    build_operations,
    build_request,
    build_search_request,
    build_search_stream_request,
)
from .service import TRANSPORT_ERRORS, Service
from .services import MutableResource, ServiceName, get_resource

logger = logging.getLogger(__name__)

_END_OF_STREAM = object()


class Customer(Service):
    """Entry point for calls made on behalf of a single customer id."""

    async def __aenter__(self) -> "Customer":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    async def search(self, query: str, timeout: Optional[float] = None, **options: Any) -> list:
        """Run a GAQL query and return every row across all pages."""
        request = self.build_typed_request(
            ServiceName.GOOGLE_ADS,
            "SearchGoogleAdsRequest",
            build_search_request(self.customer_options.customer_id, query, options),
        )
        self.hooks.fire("on_query_start", credentials=self.credentials, query=query)
        call_options = self.call_options(timeout)
        try:
            rows = await self.invoke(
                ServiceName.GOOGLE_ADS,
                lambda stub: list(stub.search(request=request, **call_options)),
            )
        except Exception as exc:
            self.hooks.fire("on_query_error", credentials=self.credentials, query=query, error=exc)
            raise
        logger.debug(
            "Query returned %s rows for customer %s", len(rows), self.customer_options.customer_id
        )
        self.hooks.fire("on_query_end", credentials=self.credentials, query=query, response=rows)
        return rows

    query = search

    async def search_stream(
        self, query: str, timeout: Optional[float] = None, **options: Any
    ) -> AsyncIterator[Any]:
        """Yield SearchGoogleAdsStreamResponse batches as they arrive.

        Closing the iterator early cancels the underlying gRPC stream.
        """
        request = self.build_typed_request(
            ServiceName.GOOGLE_ADS,
            "SearchGoogleAdsStreamRequest",
            build_search_stream_request(self.customer_options.customer_id, query, options),
        )
        call_options = self.call_options(timeout)
        self.hooks.fire("on_query_start", credentials=self.credentials, query=query)
        try:
            await self.ensure_credentials()
        except Exception as exc:
            self.hooks.fire("on_query_error", credentials=self.credentials, query=query, error=exc)
            raise
        with self.service_cache.lease(ServiceName.GOOGLE_ADS) as stub:
            stream = None
            try:
                stream = await asyncio.to_thread(
                    lambda: stub.search_stream(request=request, **call_options)
                )
                iterator = iter(stream)
                while True:
                    batch = await asyncio.to_thread(next, iterator, _END_OF_STREAM)
                    if batch is _END_OF_STREAM:
                        break
                    yield batch
            except TRANSPORT_ERRORS as exc:
                try:
                    self.raise_translated(exc)
                except Exception as translated:
                    self.hooks.fire(
                        "on_query_error", credentials=self.credentials, query=query, error=translated
                    )
                    raise
            finally:
                cancel = getattr(stream, "cancel", None)
                if callable(cancel):
                    cancel()
        self.hooks.fire("on_query_end", credentials=self.credentials, query=query, response=None)

    async def mutate_resources(
        self,
        mutations: Sequence[MutateOperation | Mapping[str, Any]],
        timeout: Optional[float] = None,
        **options: Any,
    ) -> MutateResult:
        """Send a GoogleAdsService.Mutate batch; operations keep the caller's order."""
        request = self.build_typed_request(
            ServiceName.GOOGLE_ADS,
            "MutateGoogleAdsRequest",
            build_mutate_request(
                self.customer_options.customer_id,
                build_mutate_operations(mutations, self.types.resource_type),
                options,
            ),
        )
        call_options = self.call_options(timeout)
        return await self._mutate(
            ServiceName.GOOGLE_ADS,
            lambda stub: stub.mutate(request=request, **call_options),
            mutations,
        )

    async def list_accessible_customers(self, timeout: Optional[float] = None) -> Any:
        request = self.build_typed_request(
            ServiceName.CUSTOMER, "ListAccessibleCustomersRequest", {}
        )
        call_options = self.call_options(timeout)
        return await self.invoke(
            ServiceName.CUSTOMER,
            lambda stub: stub.list_accessible_customers(request=request, **call_options),
        )

    def resource(self, entity: str) -> "ResourceService":
        """Create/update/remove helpers for one resource type, e.g. ``"Campaign"``."""
        return ResourceService(self, get_resource(entity))

    async def _mutate(self, service: ServiceName, call, mutations) -> MutateResult:
        self.hooks.fire("on_mutation_start", credentials=self.credentials, mutations=mutations)
        try:
            response = await self.invoke(service, call)
            result = self.translator.decode_partial_failure(response)
        except Exception as exc:
            self.hooks.fire(
                "on_mutation_error", credentials=self.credentials, mutations=mutations, error=exc
            )
            raise
        self.hooks.fire(
            "on_mutation_end", credentials=self.credentials, mutations=mutations, response=result
        )
        return result


class ResourceService:
    """Mutations through a resource's dedicated service, e.g. CampaignService."""

    def __init__(self, customer: Customer, resource: MutableResource) -> None:
        self.customer = customer
        self.resource = resource

    async def create(
        self, entities: Sequence[Any], timeout: Optional[float] = None, **options: Any
    ) -> MutateResult:
        return await self._send("create", entities, timeout, options)

    async def update(
        self, entities: Sequence[Any], timeout: Optional[float] = None, **options: Any
    ) -> MutateResult:
        return await self._send("update", entities, timeout, options)

    async def remove(
        self, resource_names: Sequence[Any], timeout: Optional[float] = None, **options: Any
    ) -> MutateResult:
        return await self._send("remove", resource_names, timeout, options)

    async def _send(self, kind: str, entities: Sequence[Any], timeout, options) -> MutateResult:
        customer = self.customer
        message = customer.types.resource_type(self.resource.entity) if kind == "update" else None
        operations = build_operations(kind, entities, message)
        request = customer.build_typed_request(
            self.resource.service,
            self.resource.request_type,
            build_request(customer.customer_options.customer_id, operations, options),
        )
        call_options = customer.call_options(timeout)
        method_name = self.resource.method_name
        return await customer._mutate(
            self.resource.service,
            lambda stub: getattr(stub, method_name)(request=request, **call_options),
            operations,
        )


__all__ = ["Customer", "ResourceService"]
