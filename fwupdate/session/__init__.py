"""Update/verify session orchestration.

This module handles:
- Sequencing requested targets (dual boot partition ordering included)
- Aggregating per-target outcomes into a SessionReport
- Run history persistence
"""

from fwupdate.session.models import TargetRecord, UpdateRun
from fwupdate.session.report import SessionReport
from fwupdate.session.service import (
    build_target,
    default_install_order,
    get_update_runs,
    install_order,
    record_run,
    run_session,
    select_targets,
)

__all__ = [
    "SessionReport",
    "TargetRecord",
    "UpdateRun",
    "build_target",
    "default_install_order",
    "get_update_runs",
    "install_order",
    "record_run",
    "run_session",
    "select_targets",
]
