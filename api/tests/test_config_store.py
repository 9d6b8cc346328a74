"""
Integration config persistence tests

JSON file round trip with Fernet-encrypted secrets, masking and merging of
masked values sent back by the settings UI.

Run: cd api && pytest tests/test_config_store.py -v
"""

import os
import sys
import json
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from cryptography.fernet import InvalidToken

from integrations.core.tokens import ENCRYPTED_PREFIX, TokenManager
from integrations.core.types import IntegrationConfig
from services.config_store import (
    MASK,
    InMemoryConfigProvider,
    JsonFileConfigProvider,
    mask_secrets,
    merge_masked,
)


CONFIG = IntegrationConfig(
    clickup_token="pk_secret",
    clickup_list_id="901",
    slack_token="xoxb-secret",
    slack_channel="C0123ABC456",
    jira_url="mycompany.atlassian",
)


def test_missing_file_loads_empty_config():
    with tempfile.TemporaryDirectory() as tmp:
        provider = JsonFileConfigProvider(os.path.join(tmp, "absent.json"), token_manager=TokenManager(TokenManager.generate_key()))
        assert provider.load() == IntegrationConfig()


def test_json_round_trip_encrypts_secrets():
    manager = TokenManager(TokenManager.generate_key())

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "nested", "config.json")
        provider = JsonFileConfigProvider(path, token_manager=manager)

        saved = provider.save(CONFIG)

        with open(path, encoding="utf-8") as f:
            record = json.load(f)

        assert record["clickUpListId"] == "901"
        assert record["clickUpToken"].startswith(ENCRYPTED_PREFIX)
        assert record["slackToken"].startswith(ENCRYPTED_PREFIX)
        assert "pk_secret" not in json.dumps(record)
        # Normalized before it is written
        assert record["jiraUrl"] == "https://mycompany.atlassian.net"
        assert "asanaToken" not in record

        loaded = provider.load()
        assert loaded == saved
        assert loaded.clickup_token == "pk_secret"
        assert not os.path.exists(path + ".tmp")


def test_wrong_key_cannot_read_secrets():
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "config.json")
        JsonFileConfigProvider(path, token_manager=TokenManager(TokenManager.generate_key())).save(CONFIG)

        other = JsonFileConfigProvider(path, token_manager=TokenManager(TokenManager.generate_key()))
        with pytest.raises(InvalidToken):
            other.load()


def test_plaintext_values_load_after_enabling_encryption():
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "config.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"clickUpToken": "pk_plain", "clickUpListId": "901"}, f)

        provider = JsonFileConfigProvider(path, token_manager=TokenManager(TokenManager.generate_key()))
        assert provider.load().clickup_token == "pk_plain"


def test_in_memory_provider_normalizes_on_save():
    provider = InMemoryConfigProvider()
    provider.save(IntegrationConfig(clickup_token="  pk_1 ", jira_url="acme.atlassian"))

    assert provider.load().clickup_token == "pk_1"
    assert provider.load().jira_url == "https://acme.atlassian.net"


def test_mask_secrets():
    masked = mask_secrets(CONFIG)

    assert masked["clickUpToken"] == MASK
    assert masked["slackToken"] == MASK
    assert masked["clickUpListId"] == "901"
    assert masked["asanaToken"] is None


def test_merge_masked_keeps_stored_secret():
    incoming = IntegrationConfig(
        clickup_token=MASK,
        clickup_list_id="902",
        slack_token="xoxb-rotated",
    )

    merged = merge_masked(CONFIG, incoming)

    assert merged.clickup_token == "pk_secret"
    assert merged.clickup_list_id == "902"
    assert merged.slack_token == "xoxb-rotated"
