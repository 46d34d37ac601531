"""Asynchronous Google Ads API client with cached service stubs."""
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _dist_version

from .client import Client
from .config import ClientOptions, CustomerOptions
from .customer import Customer, ResourceService
from .errors import (
    AuthenticationConfigError,
    AuthenticationError,
    ConfigurationError,
    FailureDecodeError,
    GoogleAdsClientError,
    GoogleAdsFailureError,
    MutateResult,
    TokenExchangeError,
    UnknownServiceError,
)
from .hooks import Hooks
from .request_builder import MutateOperation
from .services import ServiceName

try:
    __version__ = _dist_version("gads-client")
except PackageNotFoundError:  # pragma: no cover - during local dev without install
    __version__ = "0.0.0"

__all__ = [
    "__version__",
    "AuthenticationConfigError",
    "AuthenticationError",
    "Client",
    "ClientOptions",
    "ConfigurationError",
    "Customer",
    "CustomerOptions",
    "FailureDecodeError",
    "GoogleAdsClientError",
    "GoogleAdsFailureError",
    "Hooks",
    "MutateOperation",
    "MutateResult",
    "ResourceService",
    "ServiceName",
    "TokenExchangeError",
    "UnknownServiceError",
]
