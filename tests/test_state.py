"""Tests for state.py: device-bound anti-CSRF state."""
import pytest

from oauth2_relay.errors import ConfigurationError
from oauth2_relay.state import StateTokenGenerator


def test_deterministic_per_device(states):
    assert states.generate("dev-1") == states.generate("dev-1")


def test_differs_between_devices(states):
    assert states.generate("dev-1") != states.generate("dev-2")


def test_differs_between_secrets():
    assert StateTokenGenerator("a").generate("dev-1") != StateTokenGenerator("b").generate("dev-1")


def test_url_safe(states):
    state = states.generate("dev-1")
    assert state
    assert "=" not in state
    assert "+" not in state and "/" not in state


def test_verify_recomputes(states):
    assert states.verify("dev-1", states.generate("dev-1"))


def test_verify_rejects_other_device(states):
    assert not states.verify("dev-1", states.generate("dev-2"))


@pytest.mark.parametrize("presented", [None, "", "forged"])
def test_verify_rejects_bad_values(states, presented):
    assert not states.verify("dev-1", presented)


def test_verify_against_expected_value(states):
    assert states.verify("dev-1", "abc", expected_state="abc")
    assert not states.verify("dev-1", "abc", expected_state="abd")


def test_empty_secret_rejected():
    with pytest.raises(ConfigurationError):
        StateTokenGenerator("")
