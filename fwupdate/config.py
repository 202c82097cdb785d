"""Configuration settings for fwupdate.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from fwupdate.errors import ConfigurationError
from fwupdate.types import TargetName


def _default_db_url() -> str:
    """Return the default database URL (SQLite)."""
    db_path = Path("/var/lib/fwupdate/history.sqlite")
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the FWUPDATE_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="FWUPDATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Device identity
    model: str | None = Field(
        default=None,
        description="Hardware model the firmware package must declare",
    )
    generation: str | None = Field(
        default=None,
        description="Hardware generation the firmware package must support",
    )

    # Device paths
    boot1_device: str | None = Field(
        default="/dev/mmcblk0p1", description="First redundant boot partition"
    )
    boot2_device: str | None = Field(
        default="/dev/mmcblk0p2", description="Second redundant boot partition"
    )
    flash1_device: str | None = Field(
        default="/dev/mtd0", description="First bootloader flash device"
    )
    flash2_device: str | None = Field(
        default="/dev/mtd1", description="Second bootloader flash device"
    )
    ioc_device: str | None = Field(
        default="/dev/ttyS1", description="Serial port of the IO controller"
    )

    # Manifest sections per target
    boot_section: str = Field(default="BootImage")
    flash1_section: str = Field(default="Bootloader1")
    flash2_section: str = Field(default="Bootloader2")
    ioc_boot_section: str = Field(default="IOCBoot")
    ioc_main_section: str = Field(default="IOCMain")

    # Package layout
    manifest_name: str = Field(
        default="manifest.json",
        description="Manifest file name inside the firmware package",
    )

    # Boot partition layout
    boot_image_name: str | None = Field(
        default=None,
        description="File name of the image on the boot partition "
        "(defaults to the manifest file name)",
    )
    checksum_file_name: str = Field(
        default="md5sums",
        description="Checksum manifest file on the boot partition",
    )
    mount_options: str = Field(
        default="nodev,noexec,data=ordered",
        description="Mount options used for every boot partition mount",
    )
    fsck_command: str = Field(default="fsck")
    fsck_max_ok_status: int = Field(
        default=2,
        ge=0,
        description="Highest filesystem check status still considered usable",
    )

    # Raw flash geometry
    flash_erase_command: str = Field(default="flash_erase")
    flash_header_size: int = Field(
        default=32, ge=0, description="Image header written last, in bytes"
    )
    flash_erase_block_size: int = Field(
        default=4096, ge=1, description="Flash erase block size in bytes"
    )

    # IO controller tool
    ioc_tool: str = Field(
        default="iocfw", description="IO controller firmware tool executable"
    )

    # Timeouts (in seconds); never applied to erase, write or install steps
    command_timeout: int = Field(
        default=300,
        ge=1,
        description="Timeout for mount, filesystem checks and unmounts outside "
        "a bricking window",
    )
    ioc_verify_timeout: int = Field(
        default=600,
        ge=1,
        description="Timeout for IO controller verification",
    )

    # Paths
    tmp_dir: Path | None = Field(
        default=None,
        description="Directory for the run workspace (uses system default if not set)",
    )
    db_url: str = Field(
        default_factory=_default_db_url,
        description="Database connection URL for run history",
    )
    record_history: bool = Field(
        default=False,
        description="Store every run in the history database",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    def device_for(self, target: TargetName) -> str | None:
        """Return the configured device path for a target."""
        return {
            TargetName.BOOT1: self.boot1_device,
            TargetName.BOOT2: self.boot2_device,
            TargetName.FLASH1: self.flash1_device,
            TargetName.FLASH2: self.flash2_device,
            TargetName.IOC_BOOT: self.ioc_device,
            TargetName.IOC_MAIN: self.ioc_device,
        }[target]

    def section_for(self, target: TargetName) -> str:
        """Return the manifest section installed on a target."""
        return {
            TargetName.BOOT1: self.boot_section,
            TargetName.BOOT2: self.boot_section,
            TargetName.FLASH1: self.flash1_section,
            TargetName.FLASH2: self.flash2_section,
            TargetName.IOC_BOOT: self.ioc_boot_section,
            TargetName.IOC_MAIN: self.ioc_main_section,
        }[target]

    def configured_targets(self) -> list[TargetName]:
        """Return every target with a device path, in canonical order."""
        return [t for t in TargetName if self.device_for(t)]

    def require_identity(self) -> tuple[str, str]:
        """Return (model, generation) or fail before any device is touched.

        Raises:
            ConfigurationError: Model or generation is missing.
        """
        if not self.model:
            raise ConfigurationError(
                "Hardware model is required (--model or FWUPDATE_MODEL)",
                error_code="MODEL_REQUIRED",
            )
        if not self.generation:
            raise ConfigurationError(
                "Hardware generation is required "
                "(--generation or FWUPDATE_GENERATION)",
                error_code="GENERATION_REQUIRED",
            )
        return self.model, self.generation


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
