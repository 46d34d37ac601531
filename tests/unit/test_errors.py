"""Unit tests for GoogleAdsFailure extraction and partial failure decoding."""
from __future__ import annotations

import importlib
from types import SimpleNamespace

import grpc
import pytest
from google.api_core import exceptions as core_exceptions
from google.protobuf import any_pb2
from google.rpc import status_pb2

from gads_client.errors import (
    ErrorTranslator,
    FailureDecodeError,
    GoogleAdsFailureError,
    get_binary_metadata,
)
from gads_client.version import DEFAULT_API_VERSION, failure_metadata_key

errors_types = importlib.import_module(
    f"google.ads.googleads.{DEFAULT_API_VERSION}.errors.types.errors"
)
GoogleAdsFailure = errors_types.GoogleAdsFailure
GoogleAdsError = errors_types.GoogleAdsError

FAILURE_KEY = failure_metadata_key(DEFAULT_API_VERSION)
FAILURE_TYPE_URL = (
    f"type.googleapis.com/google.ads.googleads.{DEFAULT_API_VERSION}.errors.GoogleAdsFailure"
)
MALFORMED_BUFFER = b"\x0a\x05ab"


class FakeRpcError(grpc.RpcError):
    def __init__(self, metadata=()) -> None:
        super().__init__("rpc failed")
        self._metadata = tuple(metadata)

    def trailing_metadata(self):
        return self._metadata

    def code(self):
        return grpc.StatusCode.INVALID_ARGUMENT

    def details(self):
        return "Request contains an invalid argument."


def _error(message: str, index: int | None = None):
    if index is None:
        return GoogleAdsError(message=message)
    return GoogleAdsError(
        message=message,
        location={"field_path_elements": [{"field_name": "operations", "index": index}]},
    )


def _failure_buffer(*errors) -> bytes:
    return GoogleAdsFailure.serialize(GoogleAdsFailure(errors=list(errors)))


@pytest.fixture
def translator() -> ErrorTranslator:
    return ErrorTranslator(DEFAULT_API_VERSION)


def test_failure_key_is_versioned(translator):
    assert translator.failure_key == (
        f"google.ads.googleads.{DEFAULT_API_VERSION}.errors.googleadsfailure-bin"
    )


def test_error_without_failure_metadata_passes_through(translator):
    error = FakeRpcError(metadata=[("request-id", "abc")])
    assert translator.translate(error) is error


def test_plain_exception_passes_through(translator):
    error = RuntimeError("socket closed")
    assert translator.translate(error) is error


def test_failure_metadata_decodes_errors_in_order(translator):
    buffer = _failure_buffer(_error("first", 0), _error("second", 2), _error("third", 2))
    error = FakeRpcError(metadata=[("request-id", "req-1"), (FAILURE_KEY, buffer)])

    translated = translator.translate(error)

    assert isinstance(translated, GoogleAdsFailureError)
    assert [item.message for item in translated.errors] == ["first", "second", "third"]
    assert translated.error is error
    assert translated.request_id == "req-1"
    grouped = translated.errors_by_operation()
    assert sorted(grouped) == [0, 2]
    assert [item.message for item in grouped[2]] == ["second", "third"]
    assert "first" in str(translated)


def test_failure_found_inside_api_core_exception(translator):
    rpc_error = FakeRpcError(metadata=[(FAILURE_KEY, _failure_buffer(_error("quota")))])
    error = core_exceptions.InvalidArgument("bad", errors=(rpc_error,), response=rpc_error)

    translated = translator.translate(error)

    assert isinstance(translated, GoogleAdsFailureError)
    assert [item.message for item in translated.errors] == ["quota"]


def test_malformed_failure_metadata_raises_decode_error(translator):
    error = FakeRpcError(metadata=[(FAILURE_KEY, MALFORMED_BUFFER)])

    with pytest.raises(FailureDecodeError) as excinfo:
        translator.translate(error)
    assert excinfo.value.error is error
    assert excinfo.value.buffer == MALFORMED_BUFFER


def test_get_binary_metadata_reads_mapping_metadata():
    error = SimpleNamespace(metadata={"x-key": [b"one", b"two"]})
    assert get_binary_metadata(error, "x-key") == b"one"
    assert get_binary_metadata(error, "missing") is None


def _mutate_response(*details):
    status = status_pb2.Status(code=3, message="partial", details=list(details))
    return SimpleNamespace(partial_failure_error=status, results=["r0", "r1"])


def test_partial_failure_with_two_errors(translator):
    detail = any_pb2.Any(
        type_url=FAILURE_TYPE_URL,
        value=_failure_buffer(_error("bad name", 0), _error("bad budget", 1)),
    )
    response = _mutate_response(detail)

    result = translator.decode_partial_failure(response)

    assert len(result.mutate_operation_responses) == 1
    assert len(result.mutate_operation_responses[0].errors) == 2
    assert result.has_partial_failure
    assert result.failed_operation_indexes() == [0, 1]
    assert result.response is response
    assert result.results == ["r0", "r1"]


def test_partial_failure_ignores_unrelated_details(translator):
    unrelated = any_pb2.Any(
        type_url="type.googleapis.com/google.rpc.ErrorInfo", value=MALFORMED_BUFFER
    )

    result = translator.decode_partial_failure(_mutate_response(unrelated))

    assert result.mutate_operation_responses == []
    assert not result.has_partial_failure


def test_response_without_partial_failure(translator):
    result = translator.decode_partial_failure(SimpleNamespace(results=[]))
    assert result.mutate_operation_responses == []
    assert result.errors_by_operation() == {}


def test_partial_failure_decode_error_is_raised(translator):
    detail = any_pb2.Any(type_url=FAILURE_TYPE_URL, value=MALFORMED_BUFFER)

    with pytest.raises(FailureDecodeError):
        translator.decode_partial_failure(_mutate_response(detail))


def test_partial_failure_read_from_mapping_response(translator):
    response = {
        "partial_failure_error": {
            "code": 3,
            "details": [
                {"type_url": FAILURE_TYPE_URL, "value": _failure_buffer(_error("bad name", 1))}
            ],
        },
        "results": [],
    }

    result = translator.decode_partial_failure(response)

    assert result.has_partial_failure
    assert result.failed_operation_indexes() == [1]
