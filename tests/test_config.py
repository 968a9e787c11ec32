import json

import pytest

from carsapp.config import (
    DEFAULT_ORG,
    ORG_MENU,
    call_timeouts,
    load_app_config,
    prompt_org_selection,
    resolve_org_key,
    select_org,
    strict_failure_status,
)
from carsapp.errors import ConfigLoadError


def _write(tmp_path, obj):
    p = tmp_path / "app_config.json"
    p.write_text(json.dumps(obj) if not isinstance(obj, str) else obj, encoding="utf-8")
    return str(p)


def _org(n):
    return {
        "mspID": f"Org{n}MSP",
        "certPath": f"/crypto/org{n}/cert.pem",
        "keyPath": f"/crypto/org{n}/keystore",
        "tlsCertPath": f"/crypto/org{n}/ca.crt",
        "peerEndpoint": f"localhost:{7051 + n}",
        "gatewayPeer": f"peer0.org{n}.example.com",
    }


@pytest.fixture
def config_file(tmp_path):
    return _write(tmp_path, {
        "orgs": {f"org{n}": _org(n) for n in range(1, 5)},
        "channelName": "mychannel",
        "chaincodeName": "cars",
    })


def test_load_app_config(config_file):
    cfg = load_app_config(config_file)
    assert cfg.channel_name == "mychannel"
    assert cfg.chaincode_name == "cars"
    assert cfg.orgs["org2"].msp_id == "Org2MSP"
    assert cfg.orgs["org2"].gateway_peer == "peer0.org2.example.com"


def test_generated_config_loads(app_config_path):
    cfg = load_app_config(app_config_path)
    assert set(cfg.orgs) == {"org1", "org2", "org3", "org4"}


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigLoadError):
        load_app_config(str(tmp_path / "missing.json"))


def test_invalid_json(tmp_path):
    with pytest.raises(ConfigLoadError):
        load_app_config(_write(tmp_path, "{not json"))


def test_missing_required_field(tmp_path):
    with pytest.raises(ConfigLoadError):
        load_app_config(_write(tmp_path, {"orgs": {}, "channelName": "mychannel"}))


def test_empty_org_field_rejected(tmp_path):
    org = _org(1)
    org["mspID"] = ""
    with pytest.raises(ConfigLoadError):
        load_app_config(_write(tmp_path, {"orgs": {"org1": org}, "channelName": "c", "chaincodeName": "cc"}))


@pytest.mark.parametrize("choice,expected", [
    ("1", "org1"),
    ("2", "org2"),
    ("3", "org3"),
    ("4", "org4"),
    ("org3", "org3"),
    (" 2\n", "org2"),
    ("02", "org2"),
    ("+2", "org2"),
    ("2abc", "org2"),
    ("-2", "org1"),
    ("12", "org1"),
    ("9", "org1"),
    ("0", "org1"),
    ("abc", "org1"),
    ("", "org1"),
    (None, "org1"),
])
def test_resolve_org_key(choice, expected):
    assert resolve_org_key(choice) == expected


# Scenario D: unrecognized selection falls back to org1
def test_unrecognized_selection_selects_org1(config_file):
    cfg = load_app_config(config_file)
    org = select_org(cfg, "9")
    assert org == cfg.orgs[DEFAULT_ORG]
    assert org.msp_id == "Org1MSP"


def test_selected_org_missing_from_config(tmp_path):
    cfg = load_app_config(_write(tmp_path, {"orgs": {"org2": _org(2)}, "channelName": "c", "chaincodeName": "cc"}))
    assert select_org(cfg, "2").msp_id == "Org2MSP"
    with pytest.raises(ConfigLoadError):
        select_org(cfg, "9")


def test_prompt_org_selection(config_file):
    cfg = load_app_config(config_file)
    printed = []
    key = prompt_org_selection(cfg, input_fn=lambda _: "3", output_fn=printed.append)
    assert key == "org3"
    assert printed == [ORG_MENU]


def test_prompt_eof_defaults(config_file):
    cfg = load_app_config(config_file)

    def eof(_):
        raise EOFError

    assert prompt_org_selection(cfg, input_fn=eof, output_fn=lambda _: None) == "org1"


def test_default_call_timeouts():
    t = call_timeouts()
    assert (t.evaluate, t.endorse, t.submit, t.commit_status) == (5.0, 15.0, 5.0, 60.0)


def test_failure_status_mode(monkeypatch):
    monkeypatch.setattr("carsapp.config.FAILURE_STATUS_MODE", "strict")
    assert strict_failure_status()
    monkeypatch.setattr("carsapp.config.FAILURE_STATUS_MODE", "compat")
    assert not strict_failure_status()
