"""Tests for the structlog processors."""

import pytest

from datapod.core.logging import redact_secrets

pytestmark = pytest.mark.unit


def test_redact_secrets_masks_credentials():
    event = redact_secrets(
        None, "info", {"event": "api_key_used", "key_hash": "abc", "api_key": "dp_x", "row_id": "k1"}
    )

    assert event["key_hash"] == "[redacted]"
    assert event["api_key"] == "[redacted]"
    assert event["row_id"] == "k1"


def test_redact_secrets_leaves_other_entries_alone():
    event = {"event": "projection_created", "row_id": "e1"}

    assert redact_secrets(None, "info", dict(event)) == event
