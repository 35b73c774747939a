from __future__ import annotations

import pytest

from pythings._constants import RUNNER_KEY_PATH
from pythings.config import ThingsConfig
from pythings.keystore import Keystore


def test_paths_are_normalized() -> None:
    keystore = Keystore()
    keystore.set("homestar/runner/keys/homestar/key", "urn:iotdb:runner:abc")

    assert keystore.get(RUNNER_KEY_PATH) == "urn:iotdb:runner:abc"
    assert keystore.get("/homestar/runner/") == {"keys": {"homestar": {"key": "urn:iotdb:runner:abc"}}}
    assert keystore.get("/missing/path", "fallback") == "fallback"


def test_get_returns_copies() -> None:
    keystore = Keystore({"a": {"b": [1]}})
    keystore.get("/a/b").append(2)
    assert keystore.get("/a/b") == [1]


def test_relative_keys_use_root() -> None:
    keystore = Keystore(root="/homestar/runner")
    keystore.set("name", "kitchen-pi")
    assert keystore.get("/homestar/runner/name") == "kitchen-pi"


def test_set_replaces_scalar_on_path() -> None:
    keystore = Keystore({"a": 1})
    keystore.set("/a/b", 2)
    assert keystore.get("/a") == {"b": 2}


def test_empty_key_rejected() -> None:
    with pytest.raises(ValueError):
        Keystore().set("/", 1)


def test_from_config() -> None:
    assert Keystore.from_config(ThingsConfig(runner_id="urn:iotdb:runner:abc")).get(RUNNER_KEY_PATH) == (
        "urn:iotdb:runner:abc"
    )
    assert Keystore.from_config(ThingsConfig()).get(RUNNER_KEY_PATH) is None
