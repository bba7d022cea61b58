"""Tests for RouterOS payload schemas."""

import pytest
from pydantic import ValidationError

from routersync.schemas.device import (
    DevicePool,
    DeviceProfile,
    DeviceUser,
    PoolAddressBuckets,
    split_rate_limit,
)


class TestSplitRateLimit:
    """Tests for split_rate_limit."""

    def test_full_rate_limit(self):
        parts = split_rate_limit("10M/2M 20M/4M 8M/1M 16/16 5 2M/512k")
        assert parts == {
            "rate_limit": "10M/2M",
            "burst_limit": "20M/4M",
            "burst_threshold": "8M/1M",
            "burst_time": "16/16",
            "priority": "5",
            "min_rate": "2M/512k",
        }

    def test_missing_parts_are_none(self):
        parts = split_rate_limit("10M/2M")
        assert parts["rate_limit"] == "10M/2M"
        assert parts["burst_limit"] is None
        assert split_rate_limit(None)["rate_limit"] is None


class TestDevicePool:
    """Tests for DevicePool."""

    def test_routeros_keys(self):
        pool = DevicePool.model_validate({".id": "*1", "name": "dhcp", "ranges": "10.0.0.1-10.0.0.9"})
        assert pool.external_id == "*1"
        assert pool.ranges == "10.0.0.1-10.0.0.9"

    def test_routeros_api_id_key(self):
        assert DevicePool.model_validate({"id": "*7", "name": "p"}).external_id == "*7"

    def test_blank_ranges(self):
        assert DevicePool.model_validate({"id": "*1", "name": "p", "ranges": ""}).ranges is None

    def test_bad_ranges_rejected(self):
        with pytest.raises(ValidationError):
            DevicePool.model_validate({"id": "*1", "name": "p", "ranges": "10.0.0.9-10.0.0.1"})

    def test_missing_id_rejected(self):
        with pytest.raises(ValidationError):
            DevicePool.model_validate({"name": "p"})


class TestDeviceProfile:
    """Tests for DeviceProfile."""

    def test_engine_fields_expand_rate_limit(self):
        profile = DeviceProfile.model_validate(
            {
                ".id": "*2",
                "name": "10M",
                "rate-limit": "10M/2M 20M/4M 8M/1M 16/16 8",
                "local-address": "10.0.0.1",
                "only-one": "yes",
            }
        )
        fields = profile.engine_fields()
        assert fields["rate_limit"] == "10M/2M"
        assert fields["burst_limit"] == "20M/4M"
        assert fields["priority"] == "8"
        assert fields["local_address"] == "10.0.0.1"
        assert fields["only_one"] is True

    def test_explicit_burst_wins(self):
        profile = DeviceProfile.model_validate(
            {"id": "*2", "name": "p", "rateLimit": "10M/2M 20M/4M", "burstLimit": "30M/6M"}
        )
        assert profile.engine_fields()["burst_limit"] == "30M/6M"

    def test_only_one_default(self):
        profile = DeviceProfile.model_validate({"id": "*2", "name": "p", "only-one": "default"})
        assert profile.only_one is False


class TestDeviceUser:
    """Tests for DeviceUser."""

    def test_routeros_secret(self):
        user = DeviceUser.model_validate(
            {
                ".id": "*A",
                "name": "alice",
                "profile": "10M",
                "disabled": "true",
                "remote-address": "10.10.0.2",
            }
        )
        assert user.disabled is True
        assert user.remote_address == "10.10.0.2"

    def test_blank_address(self):
        user = DeviceUser.model_validate({"id": "*A", "name": "alice", "remote-address": ""})
        assert user.remote_address is None
        assert user.disabled is False

    def test_invalid_address_rejected(self):
        with pytest.raises(ValidationError):
            DeviceUser.model_validate({"id": "*A", "name": "alice", "remote-address": "10.0.0"})


class TestPoolAddressBuckets:
    """Tests for PoolAddressBuckets."""

    def test_normalizes_addresses(self):
        buckets = PoolAddressBuckets(
            used=[" 10.0.0.1"], available=["10.0.0.2"], owners={"10.0.0.1 ": "alice"}
        )
        assert buckets.used == ["10.0.0.1"]
        assert buckets.owners == {"10.0.0.1": "alice"}
