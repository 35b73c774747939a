from __future__ import annotations

import pytest

from pythings._ids import (
    canonical_thing_id,
    md5_hex,
    short_hash,
    thing_urn,
    to_camel_case,
    to_dash_case,
    to_underscore_case,
)


def test_hashes() -> None:
    assert md5_hex("") == "d41d8cd98f00b204e9800998ecf8427e"
    assert short_hash("") == "d41d8cd9"


def test_thing_urn_escapes_components() -> None:
    assert thing_urn("mqtt", "broker", "home/lamp") == "urn:iotdb:thing:mqtt:broker:home$2Flamp"


def test_canonical_thing_id() -> None:
    assert canonical_thing_id("lamp-1", "hue-light", None) == "lamp-1:hue-light"
    assert canonical_thing_id("lamp-1", "hue-light", "urn:iotdb:runner:abc") == (
        f"urn:iotdb:thing:abc:{short_hash('lamp-1:hue-light')}"
    )


@pytest.mark.parametrize(
    ("identifier", "dash", "underscore", "camel"),
    [
        ("HueLight", "hue-light", "hue_light", "HueLight"),
        ("hue_light", "hue-light", "hue_light", "HueLight"),
        ("hue-light", "hue-light", "hue_light", "HueLight"),
        ("WeMoSocket", "we-mo-socket", "we_mo_socket", "WeMoSocket"),
        ("TCPSensor", "tcp-sensor", "tcp_sensor", "TcpSensor"),
    ],
)
def test_case_helpers(identifier: str, dash: str, underscore: str, camel: str) -> None:
    assert to_dash_case(identifier) == dash
    assert to_underscore_case(identifier) == underscore
    assert to_camel_case(identifier) == camel
