"""Tests for identity matching."""

from types import SimpleNamespace

from routersync.services.router_sync.matcher import match_records


def _rec(external_id, name=""):
    return SimpleNamespace(external_id=external_id, name=name)


class TestMatchRecords:
    """Tests for match_records."""

    def test_partitions_records(self):
        device = [_rec("*1", "a"), _rec("*2", "b")]
        db = [_rec("*2", "old-b"), _rec("*3", "c")]
        result = match_records(device, db)
        assert list(result.matched) == ["*2"]
        device_record, row = result.matched["*2"]
        assert device_record.name == "b"
        assert row.name == "old-b"
        assert [r.external_id for r in result.missing_in_db] == ["*1"]
        assert [r.external_id for r in result.missing_in_device] == ["*3"]

    def test_matches_on_id_not_name(self):
        result = match_records([_rec("*1", "renamed")], [_rec("*1", "original")])
        assert "*1" in result.matched
        assert not result.missing_in_db
        assert not result.missing_in_device

    def test_duplicate_device_id_keeps_last(self):
        result = match_records([_rec("*1", "first"), _rec("*1", "second")], [])
        assert [r.name for r in result.missing_in_db] == ["second"]

    def test_custom_keys(self):
        device = [SimpleNamespace(address="10.0.0.1")]
        db = [SimpleNamespace(ip="10.0.0.1")]
        result = match_records(device, db, device_key="address", db_key="ip")
        assert list(result.matched) == ["10.0.0.1"]

    def test_empty_inputs(self):
        result = match_records([], [])
        assert result.matched == {}
        assert result.missing_in_db == []
        assert result.missing_in_device == []
