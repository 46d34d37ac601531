"""Error taxonomy and decoding of GoogleAdsFailure payloads.

The API reports domain failures in two places:

* on a failed call, as a serialized ``GoogleAdsFailure`` under a versioned
  ``-bin`` trailing metadata key;
* on a successful mutate sent with ``partial_failure=True``, as an ``Any``
  entry inside ``response.partial_failure_error.details``.

``ErrorTranslator`` handles both. All access to transport error internals
goes through :func:`get_binary_metadata`.
"""
from __future__ import annotations

import importlib
import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from google.auth.exceptions import RefreshError
from google.protobuf.message import DecodeError

from .version import DEFAULT_API_VERSION, failure_metadata_key

logger = logging.getLogger(__name__)

PARTIAL_FAILURE_TYPE = "errors.GoogleAdsFailure"
REQUEST_ID_KEY = "request-id"
OPERATION_FIELD_NAMES = ("operations", "mutate_operations")


class GoogleAdsClientError(Exception):
    """Base class for errors raised by gads_client."""


class ConfigurationError(GoogleAdsClientError):
    """Missing or malformed configuration. Raised at setup or first use, never retried."""


class UnknownServiceError(ConfigurationError):
    """Raised when a service name has no generated client in the installed google-ads."""


class AuthenticationError(GoogleAdsClientError):
    """Raised when credentials cannot be produced."""


class AuthenticationConfigError(AuthenticationError, ConfigurationError):
    """Raised when credential material is malformed; detected before any network call."""


class TokenExchangeError(AuthenticationError, RefreshError):
    """Raised when the OAuth token endpoint rejects a signed assertion."""


class FailureDecodeError(GoogleAdsClientError):
    """An embedded GoogleAdsFailure was present but could not be decoded."""

    def __init__(self, message: str, buffer: bytes = b"", error: BaseException | None = None) -> None:
        super().__init__(message)
        self.buffer = buffer
        self.error = error


class GoogleAdsFailureError(GoogleAdsClientError):
    """A failed call whose trailing metadata carried a GoogleAdsFailure."""

    def __init__(
        self,
        failure: Any,
        error: BaseException | None = None,
        request_id: str | None = None,
    ) -> None:
        self.failure = failure
        self.error = error
        self.request_id = request_id
        super().__init__(self._describe())

    @property
    def errors(self) -> list:
        return list(self.failure.errors)

    def errors_by_operation(self) -> dict[int, list]:
        return index_errors(self.failure.errors)

    def _describe(self) -> str:
        errors = self.errors
        if not errors:
            return "GoogleAdsFailure with no errors"
        first = errors[0].message
        if len(errors) == 1:
            return f"GoogleAdsFailure: {first}"
        return f"GoogleAdsFailure: {first} (and {len(errors) - 1} more)"


def _metadata_pairs(metadata: Any) -> Iterator[tuple[str, Any]]:
    if metadata is None:
        return
    if isinstance(metadata, Mapping):
        for key, value in metadata.items():
            if isinstance(value, (list, tuple)):
                value = value[0] if value else None
            yield key, value
        return
    for item in metadata:
        key, value = item
        yield key, value


def _metadata_sources(error: BaseException) -> Iterator[Any]:
    """Yield every metadata collection reachable from ``error``.

    grpc errors expose ``trailing_metadata()``; google.api_core exceptions keep
    the grpc error in ``response`` and ``errors``; GoogleAdsException keeps it
    in ``error``.
    """
    pending: list[Any] = [error]
    seen: set[int] = set()
    while pending:
        current = pending.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))

        trailing = getattr(current, "trailing_metadata", None)
        if callable(trailing):
            yield trailing()
        metadata = getattr(current, "metadata", None)
        if metadata is not None and not callable(metadata):
            yield metadata

        pending.append(getattr(current, "response", None))
        pending.append(getattr(current, "error", None))
        nested = getattr(current, "errors", None)
        if isinstance(nested, (list, tuple)):
            pending.extend(nested)


def get_binary_metadata(error: BaseException, key: str) -> Optional[Any]:
    """Return the first metadata value stored under ``key`` on a failed call, if any."""
    for metadata in _metadata_sources(error):
        for metadata_key, value in _metadata_pairs(metadata):
            if metadata_key == key:
                return value
    return None


def _operation_index(error: Any) -> Optional[int]:
    location = getattr(error, "location", None)
    for element in getattr(location, "field_path_elements", None) or ():
        if element.field_name in OPERATION_FIELD_NAMES:
            return int(element.index)
    return None


def index_errors(errors: Iterable[Any]) -> dict[int, list]:
    """Group GoogleAdsError entries by the index of the operation they refer to."""
    grouped: dict[int, list] = {}
    for error in errors:
        index = _operation_index(error)
        if index is None:
            continue
        grouped.setdefault(index, []).append(error)
    return grouped


@dataclass
class MutateResult:
    """A successful mutate response plus any decoded partial failure.

    Attribute access not defined here falls through to ``response``.
    """

    response: Any
    mutate_operation_responses: list = field(default_factory=list)

    @property
    def has_partial_failure(self) -> bool:
        return bool(self.mutate_operation_responses)

    def errors_by_operation(self) -> dict[int, list]:
        return index_errors(
            error for failure in self.mutate_operation_responses for error in failure.errors
        )

    def failed_operation_indexes(self) -> list[int]:
        return sorted(self.errors_by_operation())

    def __getattr__(self, name: str) -> Any:
        response = self.__dict__.get("response")
        if response is None:
            raise AttributeError(name)
        return getattr(response, name)


def _field(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


class ErrorTranslator:
    """Turns transport errors and mutate responses into GoogleAdsFailure objects."""

    def __init__(self, version: str = DEFAULT_API_VERSION) -> None:
        self.version = version
        self.failure_key = failure_metadata_key(version)
        self._failure_type: Any = None

    @property
    def failure_type(self) -> Any:
        if self._failure_type is None:
            module = importlib.import_module(
                f"google.ads.googleads.{self.version}.errors.types.errors"
            )
            self._failure_type = module.GoogleAdsFailure
        return self._failure_type

    def decode_failure(self, buffer: bytes) -> Any:
        try:
            return self.failure_type.deserialize(bytes(buffer))
        except (DecodeError, TypeError) as exc:
            raise FailureDecodeError(
                f"Malformed GoogleAdsFailure payload ({len(buffer)} bytes): {exc}",
                buffer=bytes(buffer),
            ) from exc

    def translate(self, error: BaseException) -> BaseException:
        """Return ``error`` itself, or a GoogleAdsFailureError when it carries a failure.

        Raises FailureDecodeError when the failure payload is present but unreadable.
        """
        buffer = get_binary_metadata(error, self.failure_key)
        if buffer is None:
            return error
        try:
            failure = self.decode_failure(buffer)
        except FailureDecodeError as exc:
            exc.error = error
            raise
        request_id = get_binary_metadata(error, REQUEST_ID_KEY)
        logger.warning(
            "Google Ads call failed with %s error(s) request_id=%s",
            len(failure.errors),
            request_id,
        )
        return GoogleAdsFailureError(failure, error=error, request_id=request_id)

    def decode_partial_failure(self, response: Any) -> MutateResult:
        """Attach the partial failure carried by a mutate response, if any.

        Detail entries of other types are ignored; a matching entry that
        cannot be decoded raises FailureDecodeError.
        """
        status = _field(response, "partial_failure_error")
        details = _field(status, "details") or ()

        mutate_operation_responses: list = []
        for detail in details:
            if PARTIAL_FAILURE_TYPE not in (_field(detail, "type_url") or ""):
                continue
            failure = self.decode_failure(_field(detail, "value") or b"")
            if failure.errors:
                mutate_operation_responses = [failure]
                logger.info(
                    "Mutate completed with %s partial failure error(s)", len(failure.errors)
                )
            break
        return MutateResult(
            response=response, mutate_operation_responses=mutate_operation_responses
        )


__all__ = [
    "AuthenticationConfigError",
    "AuthenticationError",
    "ConfigurationError",
    "ErrorTranslator",
    "FailureDecodeError",
    "GoogleAdsClientError",
    "GoogleAdsFailureError",
    "MutateResult",
    "TokenExchangeError",
    "UnknownServiceError",
    "get_binary_metadata",
    "index_errors",
]
