"""Unit tests for matching settings."""

import pytest

from app_circles.config import Settings
from app_circles.schemas.group import LifeStage


class TestSettings:
    def test_defaults_build_matching_config(self):
        config = Settings(_env_file=None).matching_config()

        assert (config.min_size, config.max_size) == (4, 6)
        assert config.max_gap_months == {
            LifeStage.EXPECTING: 6,
            LifeStage.NEWBORN: 3,
            LifeStage.INFANT: 6,
            LifeStage.TODDLER: 12,
        }

    def test_overrides_from_environment(self, monkeypatch):
        monkeypatch.setenv("MATCHING_MAX_GROUP_SIZE", "8")
        monkeypatch.setenv("MATCHING_MAX_GAP_MONTHS_TODDLER", "9")

        config = Settings(_env_file=None).matching_config()

        assert config.max_size == 8
        assert config.max_gap_months[LifeStage.TODDLER] == 9

    @pytest.mark.parametrize("overrides", [
        {"MATCHING_MIN_GROUP_SIZE": 0},
        {"MATCHING_MIN_GROUP_SIZE": 7, "MATCHING_MAX_GROUP_SIZE": 6},
        {"MATCHING_BUCKET_CONCURRENCY": 0},
        {"MATCHING_DISPATCH_TIMEOUT_SECONDS": 0},
        {"EMAIL_MODE": "carrier-pigeon"},
    ])
    def test_validate_required_rejects_bad_values(self, overrides):
        with pytest.raises(ValueError):
            Settings(_env_file=None, **overrides).validate_required()

    def test_validate_required_accepts_defaults(self):
        Settings(_env_file=None).validate_required()
