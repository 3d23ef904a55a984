from __future__ import annotations

import json

import pytest

from fusionops.config import coc_page_size, get_client, load_clients
from fusionops.errors import ClientNotFound, ConfigError

CLIENTS = [
    {
        "id": "acme",
        "name": "Acme",
        "cocLoginId": "login",
        "cocPassword": "secret",
        "fbAccessToken": "token",
        "adAccounts": [
            {"fbAdAccountId": "act_111", "cocCampaignId": 1, "cocCampaignName": "Plant"},
            {"fbAdAccountId": "act_222", "cocCampaignId": "2", "cocCampaignName": "Faith"},
        ],
    }
]


def test_load_clients_from_env(monkeypatch):
    monkeypatch.setenv("CLIENTS", json.dumps(CLIENTS))
    clients = load_clients()
    assert [c.id for c in clients] == ["acme"]
    assert [a.cocCampaignId for a in clients[0].adAccounts] == ["1", "2"]


def test_public_view_omits_credentials():
    client = load_clients(json.dumps(CLIENTS))[0]
    public = client.public()
    assert "cocPassword" not in public
    assert "fbAccessToken" not in public
    assert public["adAccounts"][0]["fbAdAccountId"] == "act_111"


def test_missing_clients_env_is_empty():
    assert load_clients() == []


def test_malformed_clients_raise_config_error():
    with pytest.raises(ConfigError):
        load_clients("{not json")
    with pytest.raises(ConfigError):
        load_clients(json.dumps({"id": "acme"}))
    with pytest.raises(ConfigError):
        load_clients(json.dumps([{"name": "no id"}]))


def test_get_client_unknown():
    clients = load_clients(json.dumps(CLIENTS))
    assert get_client("acme", clients).name == "Acme"
    with pytest.raises(ClientNotFound):
        get_client("nope", clients)


def test_page_size_falls_back_on_bad_values(monkeypatch):
    assert coc_page_size() == 200
    monkeypatch.setenv("COC_PAGE_SIZE", "50")
    assert coc_page_size() == 50
    monkeypatch.setenv("COC_PAGE_SIZE", "zero")
    assert coc_page_size() == 200


def test_cpp_target_is_optional():
    raw = [{**CLIENTS[0], "adAccounts": [{"fbAdAccountId": "act_1", "cocCampaignId": 1, "cppTarget": "40"}, CLIENTS[0]["adAccounts"][1]]}]
    accounts = load_clients(json.dumps(raw))[0].adAccounts
    assert accounts[0].cppTarget == 40.0
    assert accounts[1].cppTarget is None
