"""Tests for configuration module."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from fwupdate.config import Settings, get_settings, print_settings_json
from fwupdate.errors import ConfigurationError
from fwupdate.types import ExitStatus, TargetName


class TestSettings:
    """Test Settings class."""

    def test_default_settings(self) -> None:
        """Settings should have sensible defaults."""
        settings = Settings()

        assert settings.boot1_device == "/dev/mmcblk0p1"
        assert settings.boot2_device == "/dev/mmcblk0p2"
        assert settings.manifest_name == "manifest.json"
        assert settings.checksum_file_name == "md5sums"
        assert settings.flash_header_size == 32
        assert settings.flash_erase_block_size == 4096
        assert settings.fsck_max_ok_status == 2
        assert "sqlite" in settings.db_url
        assert settings.record_history is False
        assert settings.log_level == "INFO"

    def test_env_override(self) -> None:
        """Environment variables should override defaults."""
        with patch.dict(
            os.environ,
            {
                "FWUPDATE_MODEL": "X100",
                "FWUPDATE_GENERATION": "3",
                "FWUPDATE_FLASH1_DEVICE": "/dev/mtd4",
                "FWUPDATE_TMP_DIR": "/custom/tmp",
                "FWUPDATE_LOG_LEVEL": "DEBUG",
            },
        ):
            settings = Settings()

            assert settings.model == "X100"
            assert settings.generation == "3"
            assert settings.flash1_device == "/dev/mtd4"
            assert settings.tmp_dir == Path("/custom/tmp")
            assert settings.log_level == "DEBUG"

    def test_get_settings_returns_settings(self) -> None:
        """get_settings should return a Settings instance."""
        assert isinstance(get_settings(), Settings)


class TestTargetMapping:
    """Test target to device and section lookups."""

    def test_boot_partitions_share_section(self) -> None:
        """Both boot partitions install the same section."""
        settings = Settings(boot_section="Kernel")

        assert settings.section_for(TargetName.BOOT1) == "Kernel"
        assert settings.section_for(TargetName.BOOT2) == "Kernel"

    def test_io_controller_sections_share_device(self) -> None:
        """Both IO controller targets use the same serial port."""
        settings = Settings(ioc_device="/dev/ttyUSB0")

        assert settings.device_for(TargetName.IOC_BOOT) == "/dev/ttyUSB0"
        assert settings.device_for(TargetName.IOC_MAIN) == "/dev/ttyUSB0"
        assert settings.section_for(TargetName.IOC_BOOT) == "IOCBoot"
        assert settings.section_for(TargetName.IOC_MAIN) == "IOCMain"

    def test_configured_targets_skips_missing_devices(self) -> None:
        """Targets without a device path are not configured."""
        settings = Settings(flash1_device=None, flash2_device="", ioc_device=None)

        assert settings.configured_targets() == [
            TargetName.BOOT1,
            TargetName.BOOT2,
        ]


class TestRequireIdentity:
    """Test the model/generation requirement."""

    def test_identity_present(self) -> None:
        """Return model and generation when both are set."""
        settings = Settings(model="X100", generation="2")
        assert settings.require_identity() == ("X100", "2")

    def test_missing_model(self) -> None:
        """Missing model is a configuration error."""
        settings = Settings(model=None, generation="2")

        with pytest.raises(ConfigurationError) as exc_info:
            settings.require_identity()

        assert exc_info.value.error_code == "MODEL_REQUIRED"
        assert exc_info.value.exit_status == ExitStatus.CONFIGURATION_ERROR

    def test_missing_generation(self) -> None:
        """Missing generation is a configuration error."""
        settings = Settings(model="X100", generation=None)

        with pytest.raises(ConfigurationError) as exc_info:
            settings.require_identity()

        assert exc_info.value.error_code == "GENERATION_REQUIRED"


class TestPrintSettingsJson:
    """Test print_settings_json function."""

    def test_returns_valid_json(self) -> None:
        """print_settings_json should return valid JSON."""
        output = print_settings_json(Settings(model="X100"))
        data = json.loads(output)

        assert data["model"] == "X100"
        assert "boot1_device" in data
        assert "flash_erase_block_size" in data
