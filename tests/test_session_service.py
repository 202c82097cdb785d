"""Tests for session/service.py - run orchestration, ordering and history."""

import hashlib
import io
import json
import tarfile
from pathlib import Path
from unittest.mock import patch

import pytest

from fwupdate.config import Settings
from fwupdate.db import create_all_tables, get_engine, get_session_factory
from fwupdate.errors import ConfigurationError, DeviceNotFoundError
from fwupdate.session import (
    build_target,
    default_install_order,
    get_update_runs,
    run_session,
    select_targets,
)
from fwupdate.targets import (
    BootPartitionTarget,
    DeviceTarget,
    FlashDeviceTarget,
    IOControllerTarget,
    StepResult,
)
from fwupdate.types import (
    ExitStatus,
    IOControllerSection,
    Outcome,
    RunMode,
    TargetName,
)

ALL_TARGETS = list(TargetName)

IMAGES = {
    "BootImage": ("boot.img", b"boot image"),
    "Bootloader1": ("bl1.bin", b"bootloader one"),
    "Bootloader2": ("bl2.bin", b"bootloader two"),
    "IOCBoot": ("ioc-boot.bin", b"ioc boot"),
    "IOCMain": ("ioc-main.bin", b"ioc main"),
}


def build_package(
    path: Path,
    *,
    model: str = "X100",
    generation=("2", "3"),
    corrupt: str | None = None,
) -> Path:
    """Write a firmware package tarball with a manifest and every section."""
    manifest = {"Model": model, "Generation": list(generation)}
    files = {}
    for section, (name, content) in IMAGES.items():
        manifest[section] = {"Name": name, "Hash": hashlib.md5(content).hexdigest()}
        files[name] = content + b"!" if section == corrupt else content
    files["manifest.json"] = json.dumps(manifest).encode()

    with tarfile.open(path, "w:gz") as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return path


class FakeTarget(DeviceTarget):
    """Target that records calls instead of touching a device."""

    def __init__(self, name, log, *, outcome=None, error=None):
        super().__init__(name, f"/dev/fake-{name.value}")
        self.kind = name.kind
        self.log = log
        self.outcome = outcome
        self.error = error

    def _step(self, operation, default):
        self.log.append((operation, self.name))
        if self.error is not None:
            raise self.error
        return StepResult(self.outcome or default)

    def verify(self, artifact):
        return self._step("verify", Outcome.VERIFIED_OK)

    def install(self, artifact):
        return self._step("install", Outcome.UPDATED)


class FakeBootTarget(BootPartitionTarget):
    """Boot partition with a scripted self-test."""

    def __init__(self, name, log, *, healthy=True):
        super().__init__(name, f"/dev/fake-{name.value}", Path("/nonexistent"))
        self.log = log
        self.healthy = healthy

    def self_test(self):
        self.log.append(("self-test", self.name))
        return self.healthy

    def verify(self, artifact):
        self.log.append(("verify", self.name))
        return StepResult(Outcome.VERIFIED_OK)

    def install(self, artifact):
        self.log.append(("install", self.name))
        return StepResult(Outcome.UPDATED, bricking_window=0.5)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(model="X100", generation="2", tmp_dir=tmp_path / "work")


@pytest.fixture
def package(tmp_path: Path) -> Path:
    return build_package(tmp_path / "firmware.tar.gz")


@pytest.fixture
def fake_targets():
    """Replace build_target with fakes; yields (call log, overrides)."""
    log: list[tuple[str, TargetName]] = []
    overrides: dict[TargetName, DeviceTarget] = {}

    def factory(name, settings, mount_point):
        if name in overrides:
            return overrides[name]
        if name in (TargetName.BOOT1, TargetName.BOOT2):
            return FakeBootTarget(name, log)
        return FakeTarget(name, log)

    with patch("fwupdate.session.service.build_target", side_effect=factory) as bt:
        yield log, overrides, bt


class TestSelectTargets:
    """Tests for select_targets."""

    def test_default_all_configured(self, settings: Settings) -> None:
        assert select_targets(settings) == ALL_TARGETS

    def test_canonical_order_and_dedup(self, settings: Settings) -> None:
        selected = select_targets(settings, ["ioc-main", "boot2", "boot2"])
        assert selected == [TargetName.BOOT2, TargetName.IOC_MAIN]

    def test_unknown_target(self, settings: Settings) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            select_targets(settings, ["boot3"])
        assert exc_info.value.error_code == "UNKNOWN_TARGET"

    def test_unconfigured_target(self, settings: Settings) -> None:
        settings = settings.model_copy(update={"flash1_device": None})
        with pytest.raises(ConfigurationError) as exc_info:
            select_targets(settings, ["flash1"])
        assert exc_info.value.error_code == "TARGET_NOT_CONFIGURED"

    def test_nothing_configured(self) -> None:
        settings = Settings(
            boot1_device=None,
            boot2_device=None,
            flash1_device=None,
            flash2_device=None,
            ioc_device=None,
        )
        with pytest.raises(ConfigurationError) as exc_info:
            select_targets(settings)
        assert exc_info.value.error_code == "NO_TARGETS"


class TestBuildTarget:
    """Tests for build_target."""

    def test_kinds(self, settings: Settings, tmp_path: Path) -> None:
        boot = build_target(TargetName.BOOT2, settings, tmp_path)
        flash = build_target(TargetName.FLASH1, settings, tmp_path)
        ioc = build_target(TargetName.IOC_BOOT, settings, tmp_path)

        assert isinstance(boot, BootPartitionTarget)
        assert boot.device_path == settings.boot2_device
        assert boot.mount_point == tmp_path
        assert isinstance(flash, FlashDeviceTarget)
        assert flash.header_size == settings.flash_header_size
        assert isinstance(ioc, IOControllerTarget)
        assert ioc.section is IOControllerSection.BOOT
        assert ioc.verify_timeout == settings.ioc_verify_timeout


class TestInstallOrder:
    """Tests for install ordering."""

    def test_default_order(self) -> None:
        assert default_install_order(ALL_TARGETS) == [
            TargetName.BOOT2,
            TargetName.BOOT1,
            TargetName.FLASH2,
            TargetName.FLASH1,
            TargetName.IOC_BOOT,
            TargetName.IOC_MAIN,
        ]

    def test_good_boot1_updated_last(self, settings, package, fake_targets):
        log, _, _ = fake_targets

        report = run_session(package, settings=settings)

        assert report.success
        assert [r.target for r in report.results] == default_install_order(
            ALL_TARGETS
        )
        assert log[0] == ("self-test", TargetName.BOOT1)

    def test_bad_boot1_updated_first(self, settings, package, fake_targets):
        log, overrides, _ = fake_targets
        overrides[TargetName.BOOT1] = FakeBootTarget(
            TargetName.BOOT1, log, healthy=False
        )

        report = run_session(package, settings=settings)

        assert [r.target for r in report.results][:2] == [
            TargetName.BOOT1,
            TargetName.BOOT2,
        ]

    def test_single_boot_partition_no_self_test(self, settings, package, fake_targets):
        log, _, _ = fake_targets

        run_session(package, settings=settings, targets=["boot1", "flash1"])

        assert ("self-test", TargetName.BOOT1) not in log
        assert [t for _, t in log] == [TargetName.BOOT1, TargetName.FLASH1]


class TestRunSessionVerify:
    """Tests for verify runs."""

    def test_all_match(self, settings, package, fake_targets):
        report = run_session(package, mode=RunMode.VERIFY, settings=settings)

        assert report.success
        assert report.exit_status == ExitStatus.SUCCESS
        assert [r.target for r in report.results] == ALL_TARGETS
        assert all(r.outcome is Outcome.VERIFIED_OK for r in report.results)

    def test_mismatch_continues(self, settings, package, fake_targets):
        """A mismatching target does not stop later targets."""
        log, overrides, _ = fake_targets
        overrides[TargetName.FLASH1] = FakeTarget(
            TargetName.FLASH1, log, outcome=Outcome.VERIFIED_FAILED
        )

        report = run_session(package, mode=RunMode.VERIFY, settings=settings)

        assert not report.success
        assert report.exit_status == ExitStatus.TARGET_FAILED
        assert len(report.results) == len(ALL_TARGETS)
        buckets = report.buckets(io_controller=False)
        assert buckets["failed"] == ["flash1"]
        assert buckets["verified"] == ["boot1", "boot2", "flash2"]
        assert report.buckets(io_controller=True)["verified"] == [
            "ioc-boot",
            "ioc-main",
        ]


class TestRunSessionAborts:
    """Tests for errors that abort a run."""

    def test_device_error_stops_processing(self, settings, package, fake_targets):
        """No target after a device error is touched."""
        log, overrides, _ = fake_targets
        overrides[TargetName.FLASH2] = FakeTarget(
            TargetName.FLASH2, log, error=DeviceNotFoundError("/dev/mtd1")
        )

        report = run_session(package, settings=settings)

        assert report.exit_status == ExitStatus.DEVICE_ERROR
        assert report.fatal_error.error_code == "DEVICE_NOT_FOUND"
        assert [r.target for r in report.results] == [
            TargetName.BOOT2,
            TargetName.BOOT1,
        ]
        assert ("install", TargetName.FLASH1) not in log

    def test_corrupt_package_never_reaches_devices(
        self, settings, tmp_path, fake_targets
    ):
        package = build_package(tmp_path / "bad.tar.gz", corrupt="IOCMain")
        _, _, build = fake_targets

        report = run_session(package, settings=settings)

        assert report.exit_status == ExitStatus.HASH_MISMATCH
        assert report.results == []
        build.assert_not_called()

    def test_model_mismatch_before_resolution(self, settings, tmp_path, fake_targets):
        package = build_package(tmp_path / "other.tar.gz", model="Y200")
        _, _, build = fake_targets

        with patch("fwupdate.session.service.resolve_sections") as resolve:
            report = run_session(package, settings=settings)

        assert report.exit_status == ExitStatus.MANIFEST_ERROR
        assert report.fatal_error.error_code == "MODEL_MISMATCH"
        resolve.assert_not_called()
        build.assert_not_called()

    def test_generation_mismatch(self, settings, tmp_path, fake_targets):
        package = build_package(tmp_path / "old.tar.gz", generation=["1"])

        report = run_session(package, settings=settings)

        assert report.fatal_error.error_code == "GENERATION_MISMATCH"

    def test_missing_model(self, tmp_path, package, fake_targets):
        """Identity is checked before any workspace exists."""
        settings = Settings(generation="2", tmp_dir=tmp_path / "work")

        report = run_session(package, settings=settings)

        assert report.exit_status == ExitStatus.CONFIGURATION_ERROR
        assert not (tmp_path / "work").exists()

    def test_boot_read_error_is_device_error(self, settings, package, fake_targets):
        """An I/O error on a mounted partition ends the run with a report."""
        _, overrides, _ = fake_targets
        mount_point = package.parent / "mnt"
        mount_point.mkdir()
        (mount_point / "boot.img").write_bytes(b"boot image")
        overrides[TargetName.BOOT2] = BootPartitionTarget(
            TargetName.BOOT2, "/dev/mmcblk0p2", mount_point
        )

        with (
            patch("fwupdate.system.force_unmount", return_value=[]),
            patch("fwupdate.system.check_filesystem", return_value=0),
            patch("fwupdate.system.mount"),
            patch("fwupdate.system.umount"),
            patch("fwupdate.system.sync"),
            patch(
                "fwupdate.targets.boot.filecmp.cmp",
                side_effect=OSError(5, "Input/output error"),
            ),
        ):
            report = run_session(
                package, mode=RunMode.VERIFY, settings=settings, targets=["boot2"]
            )

        assert report.exit_status == ExitStatus.DEVICE_ERROR
        assert report.fatal_error.error_code == "PARTITION_READ_FAILED"
        assert report.results == []

    def test_killed_fsck_stops_install(self, settings, package, fake_targets):
        """A filesystem check killed by a signal aborts before any write."""
        log, overrides, _ = fake_targets
        mount_point = package.parent / "mnt"
        mount_point.mkdir()
        overrides[TargetName.BOOT2] = BootPartitionTarget(
            TargetName.BOOT2, "/dev/mmcblk0p2", mount_point
        )

        with (
            patch("fwupdate.system.force_unmount", return_value=[]),
            patch("fwupdate.system.check_filesystem", return_value=-9),
            patch("fwupdate.system.mount") as mock_mount,
            patch("fwupdate.system.umount"),
            patch("fwupdate.system.sync"),
        ):
            report = run_session(
                package, settings=settings, targets=["boot2", "flash1"]
            )

        assert report.exit_status == ExitStatus.DEVICE_ERROR
        assert report.fatal_error.error_code == "FSCK_FAILED"
        mock_mount.assert_not_called()
        assert log == []

    def test_missing_package(self, settings, tmp_path, fake_targets):
        report = run_session(tmp_path / "absent.tar", settings=settings)
        assert report.exit_status == ExitStatus.MANIFEST_ERROR
        assert report.fatal_error.error_code == "PACKAGE_NOT_FOUND"

    @pytest.mark.parametrize("corrupt", [None, "BootImage"])
    def test_workspace_released(self, settings, tmp_path, fake_targets, corrupt):
        """The workspace is removed on success and on failure."""
        package = build_package(tmp_path / "fw.tar.gz", corrupt=corrupt)

        report = run_session(package, settings=settings)

        assert report.finished_at is not None
        assert list((tmp_path / "work").iterdir()) == []


class TestDryRun:
    """Tests for dry runs."""

    def test_plans_without_devices(self, settings, package, fake_targets):
        _, _, build = fake_targets

        report = run_session(package, settings=settings, dry_run=True)

        assert report.success
        assert report.results == []
        assert report.planned == default_install_order(ALL_TARGETS)
        build.assert_not_called()

    def test_still_verifies_package(self, settings, tmp_path, fake_targets):
        package = build_package(tmp_path / "bad.tar.gz", corrupt="BootImage")
        report = run_session(package, settings=settings, dry_run=True)
        assert report.exit_status == ExitStatus.HASH_MISMATCH


class TestRunHistory:
    """Tests for run history persistence."""

    @pytest.fixture
    def db_session(self):
        engine = get_engine("sqlite:///:memory:")
        create_all_tables(engine)
        with get_session_factory(engine)() as session:
            yield session

    def test_record_and_query(self, settings, package, fake_targets, db_session):
        run_session(package, settings=settings, db_session=db_session)
        run_session(
            package, mode=RunMode.VERIFY, settings=settings, db_session=db_session
        )

        runs = get_update_runs(db_session)
        assert len(runs) == 2
        assert runs[0].mode == "verify"

        install_run = get_update_runs(db_session, mode=RunMode.INSTALL)[0]
        assert install_run.success is True
        assert install_run.model == "X100"
        assert [t.target for t in install_run.targets] == [
            t.value for t in default_install_order(ALL_TARGETS)
        ]
        assert install_run.targets[0].bricking_window == 0.5

    def test_records_fatal_error(self, settings, tmp_path, fake_targets, db_session):
        package = build_package(tmp_path / "bad.tar.gz", corrupt="BootImage")

        run_session(package, settings=settings, db_session=db_session)

        run = get_update_runs(db_session)[0]
        assert run.success is False
        assert run.exit_status == int(ExitStatus.HASH_MISMATCH)
        assert run.error_code == "HASH_MISMATCH"
