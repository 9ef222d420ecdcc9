from fastapi import status

from volume_manager.app.errors import (
    ExternalServiceError,
    InternalError,
    NoCapacityAvailableError,
    NotFoundError,
    VolumeManagerError,
)


def test_payload_merges_detail_after_code_and_message():
    error = NotFoundError("volume data not exists", detail={"label": "data"})

    assert error.payload == {"error": "not_found", "message": "volume data not exists", "label": "data"}
    assert str(error) == "volume data not exists"


def test_to_http_exception_uses_error_status():
    exc = NoCapacityAvailableError("no storage has 5 free").to_http_exception()

    assert exc.status_code == status.HTTP_507_INSUFFICIENT_STORAGE
    assert exc.detail == {"error": "no_capacity_available", "message": "no storage has 5 free"}


def test_error_classes_share_one_base():
    for error_cls in (ExternalServiceError, InternalError, NotFoundError):
        assert issubclass(error_cls, VolumeManagerError)

    assert ExternalServiceError("down").status_code == status.HTTP_502_BAD_GATEWAY
    assert InternalError("boom").payload["error"] == "internal_error"


def test_every_error_kind_is_documented():
    for error_cls in VolumeManagerError.__subclasses__():
        assert error_cls.__doc__, error_cls.__name__
