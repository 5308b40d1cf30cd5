import json

import pytest

from app.features.quota.services.quota_table import (
    DEFAULT_QUOTA_TABLE_PATH,
    QuotaConfigError,
    compute_checksum,
    load_quota_table,
    parse_quota_table,
)


def write_table(tmp_path, table):
    path = tmp_path / "quotas.json"
    path.write_text(json.dumps(table), encoding="utf-8")
    return path


VALID_TABLE = {
    "version": "test-1",
    "tiers": {"free": {"maxUrlsPerBatch": 5, "maxAiUrlsPerBatch": 5, "maxAiUrlsPerDay": 10}},
}


def test_bundled_table_defines_free_tier():
    table = load_quota_table()
    limits = table.limits_for("free")

    assert limits.max_urls_per_batch == 5
    assert limits.max_ai_urls_per_batch == 5
    assert limits.max_ai_urls_per_day == 10


def test_payload_matches_file_contents():
    table = load_quota_table()
    raw = json.loads(DEFAULT_QUOTA_TABLE_PATH.read_text(encoding="utf-8"))

    payload = table.to_payload()

    assert payload["version"] == raw["version"]
    assert payload["tiers"] == raw["tiers"]
    assert payload["checksum"] == compute_checksum(raw)


def test_checksum_ignores_key_order_and_whitespace(tmp_path):
    reordered = {
        "tiers": {"free": {"maxAiUrlsPerDay": 10, "maxAiUrlsPerBatch": 5, "maxUrlsPerBatch": 5}},
        "version": "test-1",
    }
    path = tmp_path / "quotas.json"
    path.write_text(json.dumps(reordered, indent=4), encoding="utf-8")

    assert load_quota_table(path).checksum == parse_quota_table(VALID_TABLE).checksum


def test_checksum_changes_with_any_limit():
    changed = json.loads(json.dumps(VALID_TABLE))
    changed["tiers"]["free"]["maxAiUrlsPerDay"] = 11

    assert parse_quota_table(changed).checksum != parse_quota_table(VALID_TABLE).checksum


def test_expected_checksum_mismatch_is_fatal(tmp_path):
    path = write_table(tmp_path, VALID_TABLE)

    with pytest.raises(QuotaConfigError) as exc:
        load_quota_table(path, expected_checksum="0" * 64)

    assert "checksum mismatch" in str(exc.value)
    assert exc.value.code == "QUOTA_CONFIG_INVALID"


def test_expected_checksum_match_loads(tmp_path):
    path = write_table(tmp_path, VALID_TABLE)
    checksum = parse_quota_table(VALID_TABLE).checksum

    assert load_quota_table(path, expected_checksum=checksum).version == "test-1"


@pytest.mark.parametrize(
    "free_tier",
    [
        {"maxUrlsPerBatch": 5, "maxAiUrlsPerBatch": 6, "maxAiUrlsPerDay": 10},
        {"maxUrlsPerBatch": 5, "maxAiUrlsPerBatch": 5, "maxAiUrlsPerDay": 4},
        {"maxUrlsPerBatch": 0, "maxAiUrlsPerBatch": 0, "maxAiUrlsPerDay": 10},
        {"maxUrlsPerBatch": 5, "maxAiUrlsPerBatch": 5},
    ],
)
def test_inconsistent_tiers_are_rejected(free_tier):
    with pytest.raises(QuotaConfigError):
        parse_quota_table({"version": "bad", "tiers": {"free": free_tier}})


def test_empty_tiers_rejected():
    with pytest.raises(QuotaConfigError):
        parse_quota_table({"version": "empty", "tiers": {}})


def test_unreadable_file(tmp_path):
    path = tmp_path / "quotas.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(QuotaConfigError):
        load_quota_table(path)


def test_unknown_tier():
    with pytest.raises(QuotaConfigError):
        parse_quota_table(VALID_TABLE).limits_for("enterprise")
