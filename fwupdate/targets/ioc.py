"""IO controller adapter.

The IO controller is programmed over its serial port by an external
tool::

    <tool> verify  <device> <section> <file>
    <tool> install <device> <section> <file>

The tool does its own verify-before-write. This adapter only maps its
exit status onto outcomes, once, through the closed enums below.
"""

import logging
import os
from enum import Enum

from fwupdate import system
from fwupdate.errors import (
    CommandExecutionError,
    DeviceNotFoundError,
    IOControllerError,
)
from fwupdate.targets.base import DeviceTarget, StepResult
from fwupdate.types import (
    IOControllerSection,
    Outcome,
    ResolvedArtifact,
    TargetKind,
    TargetName,
)

logger = logging.getLogger(__name__)


class VerifyStatus(str, Enum):
    """Exit status classes of the tool's verify command."""

    MATCH = "match"
    MISMATCH = "mismatch"
    DEVICE_ERROR = "device-error"

    @classmethod
    def from_exit_code(cls, code: int) -> "VerifyStatus":
        """Classify: 0 match, 1 mismatch, anything else a device error."""
        if code == 0:
            return cls.MATCH
        if code == 1:
            return cls.MISMATCH
        return cls.DEVICE_ERROR


class InstallStatus(str, Enum):
    """Exit status classes of the tool's install command."""

    UPDATED = "updated"
    VERIFY_FAILED = "verify-failed"
    UP_TO_DATE = "up-to-date"
    DEVICE_ERROR = "device-error"

    @classmethod
    def from_exit_code(cls, code: int) -> "InstallStatus":
        """Classify: 0 updated, 1 failed, 2 up to date, else a device error."""
        return {
            0: cls.UPDATED,
            1: cls.VERIFY_FAILED,
            2: cls.UP_TO_DATE,
        }.get(code, cls.DEVICE_ERROR)


_VERIFY_OUTCOMES = {
    VerifyStatus.MATCH: Outcome.VERIFIED_OK,
    VerifyStatus.MISMATCH: Outcome.VERIFIED_FAILED,
}

_INSTALL_OUTCOMES = {
    InstallStatus.UPDATED: Outcome.UPDATED,
    InstallStatus.VERIFY_FAILED: Outcome.FAILED,
    InstallStatus.UP_TO_DATE: Outcome.SKIPPED,
}


class IOControllerTarget(DeviceTarget):
    """One firmware section of the serial-attached IO controller."""

    kind = TargetKind.IO_CONTROLLER

    def __init__(
        self,
        name: TargetName,
        device_path: str,
        section: IOControllerSection,
        *,
        tool: str = "iocfw",
        verify_timeout: int | None = None,
    ) -> None:
        super().__init__(name, device_path)
        self.section = section
        self.tool = tool
        self.verify_timeout = verify_timeout

    def _run_tool(
        self, command: str, artifact: ResolvedArtifact, timeout: int | None
    ) -> int:
        if not os.path.exists(self.device_path):
            raise DeviceNotFoundError(self.device_path)

        cmd = [
            self.tool,
            command,
            self.device_path,
            self.section.value,
            str(artifact.path),
        ]
        try:
            result = system.run_command(
                cmd, timeout=timeout, device_path=self.device_path
            )
        except CommandExecutionError as e:
            raise IOControllerError(self.device_path, e.message, None) from e

        if result.stdout:
            logger.debug("%s output: %s", self.tool, result.stdout.strip())
        return result.returncode

    def verify(self, artifact: ResolvedArtifact) -> StepResult:
        code = self._run_tool("verify", artifact, self.verify_timeout)
        status = VerifyStatus.from_exit_code(code)
        logger.info(
            "IO controller %s section verify: %s (exit %d)",
            self.section.value,
            status.value,
            code,
        )
        if status is VerifyStatus.DEVICE_ERROR:
            raise IOControllerError(
                self.device_path, f"verify {self.section.value} exited {code}", code
            )
        return StepResult(_VERIFY_OUTCOMES[status])

    def install(self, artifact: ResolvedArtifact) -> StepResult:
        # No timeout: the tool may be rewriting the controller's flash.
        code = self._run_tool("install", artifact, None)
        status = InstallStatus.from_exit_code(code)
        logger.info(
            "IO controller %s section install: %s (exit %d)",
            self.section.value,
            status.value,
            code,
        )
        if status is InstallStatus.DEVICE_ERROR:
            raise IOControllerError(
                self.device_path, f"install {self.section.value} exited {code}", code
            )
        return StepResult(_INSTALL_OUTCOMES[status])


__all__ = ["IOControllerTarget", "InstallStatus", "VerifyStatus"]
