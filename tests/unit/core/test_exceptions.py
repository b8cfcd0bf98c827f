# tests/unit/core/test_exceptions.py
import pytest

from app.core import exceptions
from app.core.enums import ErrorKind
from app.core.exceptions import BaseServiceError, RemoteError, RemoteTimeoutError


def service_errors():
    return [
        obj for obj in vars(exceptions).values()
        if isinstance(obj, type) and issubclass(obj, Exception)
    ]


def test_every_error_belongs_to_the_service_hierarchy():
    assert all(issubclass(cls, BaseServiceError) for cls in service_errors())


@pytest.mark.parametrize("cls", [c for c in service_errors() if c is not BaseServiceError])
def test_every_error_carries_a_kind(cls):
    assert isinstance(cls.kind, ErrorKind)


def test_remote_errors_keep_destination_details():
    error = RemoteTimeoutError("slow", destination_id="d1", status_code=504)

    assert isinstance(error, RemoteError)
    assert error.kind == ErrorKind.TIMEOUT
    assert (error.destination_id, error.status_code) == ("d1", 504)
