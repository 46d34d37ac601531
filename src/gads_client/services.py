"""Registry of Google Ads services and construction of their generated clients."""
from __future__ import annotations

import importlib
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from google.auth.credentials import Credentials

from .errors import UnknownServiceError
from .version import DEFAULT_API_VERSION

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "googleads.googleapis.com"

# Matches the limits google-ads configures on its own channels.
GRPC_CHANNEL_OPTIONS = [
    ("grpc.max_metadata_size", 16 * 1024 * 1024),
    ("grpc.max_receive_message_length", 64 * 1024 * 1024),
]

_FIRST_CAP = re.compile(r"(.)([A-Z][a-z]+)")
_ALL_CAP = re.compile(r"([a-z0-9])([A-Z])")


def to_snake_case(value: str) -> str:
    """``AdGroupAdOperation`` -> ``ad_group_ad_operation``."""
    value = _FIRST_CAP.sub(r"\1_\2", value)
    return _ALL_CAP.sub(r"\1_\2", value).replace("-", "_").lower()


def to_pascal_case(value: str) -> str:
    return "".join(part.capitalize() for part in value.split("_"))


class ServiceName(str, Enum):
    """The services this client knows how to construct."""

    GOOGLE_ADS = "GoogleAdsService"
    CUSTOMER = "CustomerService"
    CAMPAIGN = "CampaignService"
    CAMPAIGN_BUDGET = "CampaignBudgetService"
    CAMPAIGN_CRITERION = "CampaignCriterionService"
    CAMPAIGN_LABEL = "CampaignLabelService"
    AD_GROUP = "AdGroupService"
    AD_GROUP_AD = "AdGroupAdService"
    AD_GROUP_CRITERION = "AdGroupCriterionService"
    LABEL = "LabelService"
    CONVERSION_ACTION = "ConversionActionService"

    @property
    def module_name(self) -> str:
        return to_snake_case(self.value)

    @property
    def client_class_name(self) -> str:
        return f"{self.value}Client"

    @classmethod
    def parse(cls, value: "ServiceName | str") -> "ServiceName":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        for member in cls:
            if value in (member.name, member.client_class_name):
                return member
        raise UnknownServiceError(f'Service "{value}" could not be found')


@dataclass(frozen=True)
class MutableResource:
    """How a resource type is mutated through its dedicated service."""

    entity: str
    service: ServiceName
    plural: str

    @property
    def method_name(self) -> str:
        return f"mutate_{self.plural}"

    @property
    def request_type(self) -> str:
        return f"Mutate{to_pascal_case(self.plural)}Request"


RESOURCES = {
    resource.entity: resource
    for resource in (
        MutableResource("Campaign", ServiceName.CAMPAIGN, "campaigns"),
        MutableResource("CampaignBudget", ServiceName.CAMPAIGN_BUDGET, "campaign_budgets"),
        MutableResource("CampaignCriterion", ServiceName.CAMPAIGN_CRITERION, "campaign_criteria"),
        MutableResource("CampaignLabel", ServiceName.CAMPAIGN_LABEL, "campaign_labels"),
        MutableResource("AdGroup", ServiceName.AD_GROUP, "ad_groups"),
        MutableResource("AdGroupAd", ServiceName.AD_GROUP_AD, "ad_group_ads"),
        MutableResource("AdGroupCriterion", ServiceName.AD_GROUP_CRITERION, "ad_group_criteria"),
        MutableResource("Label", ServiceName.LABEL, "labels"),
        MutableResource("ConversionAction", ServiceName.CONVERSION_ACTION, "conversion_actions"),
    )
}


def get_resource(entity: str) -> MutableResource:
    try:
        return RESOURCES[entity]
    except KeyError:
        raise UnknownServiceError(f'No service is registered for resource "{entity}"') from None


class TypeResolver:
    """Resolves generated proto-plus types for one API version."""

    def __init__(self, version: str = DEFAULT_API_VERSION) -> None:
        self.version = version

    def _import(self, path: str):
        try:
            return importlib.import_module(f"google.ads.googleads.{self.version}.{path}")
        except ImportError as exc:
            raise UnknownServiceError(
                f"google.ads.googleads.{self.version}.{path} is not available in the installed google-ads"
            ) from exc

    def request_type(self, service: ServiceName, name: str) -> Any:
        module = self._import(f"services.types.{service.module_name}")
        try:
            return getattr(module, name)
        except AttributeError:
            raise UnknownServiceError(f"{service.value} has no request type {name}") from None

    def resource_type(self, entity: str) -> Any:
        module = self._import(f"resources.types.{to_snake_case(entity)}")
        try:
            return getattr(module, entity)
        except AttributeError:
            raise UnknownServiceError(f"No resource type {entity}") from None

    def service_client_class(self, service: ServiceName) -> Any:
        module = self._import(f"services.services.{service.module_name}")
        try:
            return getattr(module, service.client_class_name)
        except AttributeError:
            raise UnknownServiceError(f'Service "{service.value}" could not be found') from None


StubFactory = Callable[[ServiceName], Any]


class GrpcServiceFactory:
    """Builds a generated service client over a fresh authenticated gRPC channel.

    Initialising a client opens a channel, so callers keep the result in a
    ServiceCache and close it when it is evicted.
    """

    def __init__(
        self,
        credentials: Credentials,
        version: str = DEFAULT_API_VERSION,
        endpoint: str | None = None,
    ) -> None:
        self.credentials = credentials
        self.types = TypeResolver(version)
        self.endpoint = endpoint or DEFAULT_ENDPOINT

    def __call__(self, service: ServiceName) -> Any:
        client_class = self.types.service_client_class(service)
        transport_class = client_class.get_transport_class("grpc")
        channel = transport_class.create_channel(
            host=self.endpoint,
            credentials=self.credentials,
            options=GRPC_CHANNEL_OPTIONS,
        )
        logger.debug("Opened gRPC channel for %s (%s)", service.value, self.types.version)
        return client_class(transport=transport_class(channel=channel))


def close_stub(stub: Any) -> None:
    """Release the channel held by a generated client."""
    transport = getattr(stub, "transport", None)
    if transport is not None and hasattr(transport, "close"):
        transport.close()
    elif hasattr(stub, "close"):
        stub.close()


__all__ = [
    "DEFAULT_ENDPOINT",
    "GrpcServiceFactory",
    "MutableResource",
    "RESOURCES",
    "ServiceName",
    "StubFactory",
    "TypeResolver",
    "close_stub",
    "get_resource",
    "to_pascal_case",
    "to_snake_case",
]
