import pytest

from valkms.errors import ErrorKind, KmsError


@pytest.mark.parametrize(
    "kind, description",
    [
        (ErrorKind.ACCESS_ERROR, "access denied"),
        (ErrorKind.DOUBLE_SIGN, "attempted double sign"),
        (ErrorKind.EXCEED_MAX_HEIGHT, "requested signature above stop height"),
    ],
)
def test_kind_descriptions(kind, description):
    err = KmsError(kind)
    assert str(err) == description
    assert str(kind.error("detail")) == f"{description}: detail"


def test_error_without_message_displays_kind():
    err = KmsError(ErrorKind.IO_ERROR)
    assert str(err) == "I/O error"
    assert err.kind is ErrorKind.IO_ERROR
    assert err.message is None


def test_kind_error_builds_error_with_message():
    err = ErrorKind.CHAIN_ID_ERROR.error("got unexpected chain ID")
    assert err.kind is ErrorKind.CHAIN_ID_ERROR
    assert str(err) == "chain ID error: got unexpected chain ID"


def test_error_can_be_raised_and_caught():
    err = ErrorKind.SIGNING_ERROR.error("device unplugged")
    assert err.kind is ErrorKind.SIGNING_ERROR
    assert err.message == "device unplugged"
    assert str(err) == "signing operation failed: device unplugged"
    with pytest.raises(KmsError) as info:
        raise err
    assert info.value is err


def test_from_panic_with_string():
    err = KmsError.from_panic("boom")
    assert err.kind is ErrorKind.PANIC_ERROR
    assert str(err) == "internal crash: boom"


def test_from_panic_detects_poison():
    err = KmsError.from_panic("called unwrap on PoisonError")
    assert err.kind is ErrorKind.POISON_ERROR
    assert err.message == "called unwrap on PoisonError"


def test_from_panic_with_unknown_payload():
    err = KmsError.from_panic(42)
    assert err.kind is ErrorKind.PANIC_ERROR
    assert err.message == "unknown cause"