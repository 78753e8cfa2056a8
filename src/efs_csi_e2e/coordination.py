"""FileLock-based leader election and broadcast between xdist workers.

Setup: the first worker to take the lock finds no ledger, becomes the
leader, resolves the fixture and writes the ledger. Every later worker
finds the ledger and adopts the broadcast payload from it.

Any setup error is written to the ledger too, so followers fail with the
leader's error instead of provisioning a second time. Errors that are not
already fatal are wrapped in FixtureProvisioningError.

Teardown: :func:`load_leader_state` rebuilds the leader's state (ownership
flags included) for the process that runs teardown after all workers have
finished.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path

from filelock import FileLock

from .exceptions import FatalFixtureError, FixtureProvisioningError, LeaderSetupFailed
from .fixture import FixtureCoordinator, FixtureLifecycleState

logger = logging.getLogger(__name__)

LEDGER_NAME = "efs-shared-fixture"


@dataclass(frozen=True)
class FixtureLedger:
    """Shared-file record of the leader's setup outcome."""

    payload: str | None = None
    owns_file_system: bool = False
    owns_driver: bool = False
    error: str | None = None

    @classmethod
    def read(cls, path: Path) -> FixtureLedger:
        return cls(**json.loads(path.read_text()))

    def write(self, path: Path) -> None:
        path.write_text(json.dumps(asdict(self)))


def ledger_paths(root: Path, name: str = LEDGER_NAME) -> tuple[Path, Path]:
    """Lock and data file locations under the directory shared by all workers."""
    return root / f"{name}.lock", root / f"{name}.json"


def get_or_resolve_fixture(
    root: Path,
    resolve: Callable[[], FixtureLifecycleState],
    name: str = LEDGER_NAME,
) -> FixtureLifecycleState:
    """
    Resolve the fixture on the first caller and adopt it on every other.

    Args:
        root: Directory shared by every worker of the run
        resolve: Leader-side setup, normally ``FixtureCoordinator.resolve_fixture``
        name: Ledger name, so unrelated fixtures don't collide

    Returns:
        The leader's state on the leader, an adopted state on followers

    Raises:
        FatalFixtureError: The leader's own error on the leader (unexpected
            errors wrapped in FixtureProvisioningError), LeaderSetupFailed
            on followers
    """
    lock_file, data_file = ledger_paths(root, name)

    with FileLock(str(lock_file)):
        if data_file.exists():
            ledger = FixtureLedger.read(data_file)
            if ledger.error is not None or ledger.payload is None:
                raise LeaderSetupFailed(ledger.error or "no file system id was published")
            logger.debug("Adopting shared fixture %s", ledger.payload)
            return FixtureCoordinator.adopt_fixture(ledger.payload.encode("utf-8"))

        # First worker is the leader
        try:
            state = resolve()
        except FatalFixtureError as e:
            FixtureLedger(error=str(e)).write(data_file)
            raise
        except Exception as e:
            error = FixtureProvisioningError(
                "setting up shared fixture", str(e) or type(e).__name__, cause=e
            )
            FixtureLedger(error=str(error)).write(data_file)
            raise error from e

        FixtureLedger(
            payload=state.payload.decode("utf-8"),
            owns_file_system=state.owns_file_system,
            owns_driver=state.owns_driver,
        ).write(data_file)

    return state


def load_leader_state(root: Path, name: str = LEDGER_NAME) -> FixtureLifecycleState | None:
    """
    Rebuild the leader's state from the ledger for teardown.

    Returns:
        None if no worker ever set the fixture up, or setup failed before
        anything was published
    """
    _, data_file = ledger_paths(root, name)
    if not data_file.exists():
        return None

    ledger = FixtureLedger.read(data_file)
    if ledger.payload is None:
        return None
    return FixtureLifecycleState(
        file_system_id=ledger.payload,
        owns_file_system=ledger.owns_file_system,
        owns_driver=ledger.owns_driver,
    )
