from types import SimpleNamespace

import pytest
from trezorlib import messages, tools
from trezorlib.exceptions import Cancelled, PinException, TrezorFailure
from trezorlib.transport import TransportException

from conftest import StaticPrompt

import trezorcipher.trezor as tz
from trezorcipher.config import DEFAULT_DERIVATION_PATH, DEFAULT_IV
from trezorcipher.device import PASSPHRASE_REQUEST, PIN_REQUEST, ResultStatus, open_device
from trezorcipher.errors import (
    DeviceError,
    DeviceResetFailed,
    DeviceUnavailable,
    PromptIOError,
)
from trezorcipher.prompt import deny_confirmation

PATH = DEFAULT_DERIVATION_PATH
BLOCK = bytes(range(16))


class FakeClient:
    """Stands in for trezorlib's TrezorClient; replies come from a shared script."""

    def __init__(self, ui, script, fail_init=None):
        self.ui = ui
        self.script = script
        self.fail_init = fail_init
        self.sent = []
        self.inits = []
        self.features = SimpleNamespace(
            model="T",
            label="work",
            major_version=2,
            minor_version=5,
            patch_version=3,
            initialized=True,
            pin_protection=True,
            passphrase_protection=False,
        )

    def init_device(self, new_session=False):
        self.inits.append(new_session)
        if self.fail_init is not None:
            raise self.fail_init

    def call(self, msg):
        self.sent.append(msg)
        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return step(self.ui)
        return step


@pytest.fixture
def wallet(monkeypatch):
    state = SimpleNamespace(clients=[], script=[], paths=[], fail_init=None)

    def fake_get_default_client(path=None, ui=None, **kwargs):
        state.paths.append(path)
        c = FakeClient(ui, state.script, state.fail_init)
        state.clients.append(c)
        return c

    monkeypatch.setattr(tz, "get_default_client", fake_get_default_client)
    return state


def test_encrypt_sends_cipher_key_value(wallet):
    wallet.script.append(messages.CipheredKeyValue(value=BLOCK))
    s = tz.TrezorSession(path="webusb:001:1")
    out, status = s.cipher_key_value(PATH, True, "disk", b"Some key", DEFAULT_IV, True, False)

    assert (out, status) == (BLOCK, ResultStatus.CIPHERED_VALUE_RETURNED)
    assert wallet.paths == ["webusb:001:1"]
    msg = wallet.clients[0].sent[0]
    assert isinstance(msg, messages.CipherKeyValue)
    assert msg.address_n == tools.parse_path(PATH)
    assert msg.key == "disk"
    assert msg.value == b"Some key" + b"\x00" * 8
    assert msg.encrypt is True
    assert msg.ask_on_encrypt is True
    assert msg.ask_on_decrypt is False
    assert msg.iv == DEFAULT_IV


def test_decrypt_sends_raw_bytes(wallet):
    wallet.script.append(messages.CipheredKeyValue(value=b"Some key" + b"\x00" * 8))
    s = tz.TrezorSession()
    out, _ = s.cipher_key_value(PATH, False, "disk", BLOCK.hex().encode(), DEFAULT_IV)
    assert out == b"Some key" + b"\x00" * 8
    msg = wallet.clients[0].sent[0]
    assert msg.value == BLOCK
    assert msg.encrypt is False


@pytest.mark.parametrize(
    "response, status",
    [
        (messages.Success(message="done"), ResultStatus.GENERIC_SUCCESS),
        (messages.Failure(message="nope"), ResultStatus.FAILURE),
        (messages.Address(address="1abc"), ResultStatus.UNEXPECTED),
    ],
)
def test_response_status_mapping(wallet, response, status):
    wallet.script.append(response)
    _, got = tz.TrezorSession().cipher_key_value(PATH, True, "k", b"v", DEFAULT_IV)
    assert got is status


@pytest.mark.parametrize(
    "exc, expected",
    [
        (Cancelled(), DeviceError),
        (PinException(messages.FailureType.PinInvalid, "PIN invalid"), DeviceError),
        (TrezorFailure(messages.Failure(code=messages.FailureType.ProcessError, message="boom")), DeviceError),
        (ValueError("Invalid PIN provided"), PromptIOError),
    ],
)
def test_library_errors_are_mapped(wallet, exc, expected):
    wallet.script.append(exc)
    with pytest.raises(expected) as e:
        tz.TrezorSession().cipher_key_value(PATH, True, "k", b"v", DEFAULT_IV)
    assert not isinstance(e.value, DeviceUnavailable)
    assert e.value.exit_code == 3


def test_lost_transport_with_denied_confirmation(wallet):
    wallet.script.append(TransportException("device disconnected"))
    s = tz.TrezorSession()
    s.set_get_confirm_callback(deny_confirmation)
    with pytest.raises(DeviceUnavailable) as e:
        s.cipher_key_value(PATH, True, "k", b"v", DEFAULT_IV)
    assert e.value.exit_code == 1
    assert len(wallet.clients) == 1


def test_lost_transport_with_approved_confirmation_reconnects(wallet):
    wallet.script.extend([TransportException("device disconnected"), messages.CipheredKeyValue(value=BLOCK)])
    s = tz.TrezorSession()
    s.set_get_confirm_callback(lambda request: True)
    out, status = s.cipher_key_value(PATH, True, "k", b"v", DEFAULT_IV)
    assert (out, status) == (BLOCK, ResultStatus.CIPHERED_VALUE_RETURNED)
    assert len(wallet.clients) == 2
    assert len(wallet.clients[1].sent) == 1


def test_reset_starts_a_new_session(wallet):
    s = tz.TrezorSession()
    s.reset()
    assert wallet.clients[0].inits == [True]


def test_reset_failure(wallet):
    wallet.fail_init = TransportException("usb error")
    s = tz.TrezorSession()
    with pytest.raises(DeviceResetFailed) as e:
        s.reset()
    assert e.value.exit_code == 2


def test_pin_and_passphrase_reach_the_callback(wallet):
    answers = []

    def ask_both(ui):
        answers.append(ui.get_pin(messages.PinMatrixRequestType.Current))
        answers.append(ui.get_passphrase(available_on_device=False))
        return messages.CipheredKeyValue(value=BLOCK)

    wallet.script.append(ask_both)
    prompt = StaticPrompt(b"1234")
    s = tz.TrezorSession()
    s.set_get_pin_callback(prompt.get_secret)
    s.cipher_key_value(PATH, True, "k", b"v", DEFAULT_IV)

    assert answers == ["1234", "1234"]
    assert prompt.requests == [PIN_REQUEST, PASSPHRASE_REQUEST]


def test_non_utf8_secret_is_a_prompt_error(wallet):
    wallet.script.append(lambda ui: ui.get_pin())
    s = tz.TrezorSession()
    s.set_get_pin_callback(StaticPrompt(b"\xff\xfe").get_secret)
    with pytest.raises(PromptIOError):
        s.cipher_key_value(PATH, True, "k", b"v", DEFAULT_IV)


def test_bad_derivation_path(wallet):
    with pytest.raises(DeviceError):
        tz.TrezorSession().cipher_key_value("m/not-a-path", True, "k", b"v", DEFAULT_IV)
    assert wallet.clients[0].sent == []


def test_describe_reports_features(wallet):
    facts = tz.TrezorSession().describe()
    assert facts["model"] == "T"
    assert facts["firmware"] == "2.5.3"
    assert facts["pin_protection"] is True


def test_closed_session_has_no_client(wallet):
    s = tz.TrezorSession()
    s.close()
    with pytest.raises(DeviceUnavailable):
        s.reset()


def test_open_device_without_hardware(monkeypatch):
    def no_device(path=None, ui=None, **kwargs):
        raise TransportException("No TREZOR device found")

    monkeypatch.setattr(tz, "get_default_client", no_device)
    with pytest.raises(DeviceUnavailable) as e:
        open_device(dummy=False)
    assert e.value.exit_code == 1
