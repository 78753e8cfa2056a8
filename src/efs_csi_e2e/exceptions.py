"""Exceptions for efs-csi-e2e."""

from typing import Any

# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------


class EFSE2EError(Exception):
    """
    Base exception for all efs-csi-e2e errors.

    All exceptions raised by this package inherit from this class,
    allowing callers to catch all package-specific errors with a single
    except clause.
    """

    pass


# ---------------------------------------------------------------------------
# Category Exceptions
# ---------------------------------------------------------------------------


class FatalFixtureError(EFSE2EError):
    """
    Base exception for errors that abort the whole suite.

    Raised during fixture setup, before any test case runs. These are
    never retried and a partially created fixture is not rolled back.
    """

    pass


class TestCaseError(EFSE2EError):
    """
    Base exception for failures scoped to a single test case.

    These fail the test that raised them without affecting other test
    cases or suite teardown.
    """

    __test__ = False


# ---------------------------------------------------------------------------
# Fatal Setup Exceptions
# ---------------------------------------------------------------------------


class ConfigurationError(FatalFixtureError):
    """Raised when the shared fixture configuration is invalid."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid fixture configuration: {reason}")


class FixtureProvisioningError(FatalFixtureError):
    """
    Raised when creating the shared file system or deploying the driver fails.

    Attributes:
        operation: The operation that failed (e.g., "creating file system")
        resource: Identifier of the resource involved, if known
        cause: The underlying exception
    """

    def __init__(
        self,
        operation: str,
        reason: str,
        *,
        resource: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.operation = operation
        self.reason = reason
        self.resource = resource
        self.cause = cause
        msg = f"{operation} failed: {reason}"
        if resource:
            msg += f" [{resource}]"
        super().__init__(msg)


class FixtureDeletionError(EFSE2EError):
    """Raised when deleting the shared file system or its mount targets fails."""

    def __init__(self, file_system_id: str, reason: str) -> None:
        self.file_system_id = file_system_id
        self.reason = reason
        super().__init__(f"deleting file system {file_system_id} failed: {reason}")


class ManifestError(EFSE2EError):
    """Raised when applying or deleting a deployment manifest fails."""

    def __init__(self, action: str, manifest: str, reason: str) -> None:
        self.action = action
        self.manifest = manifest
        self.reason = reason
        super().__init__(f"kubectl {action} -k {manifest} failed: {reason}")


class DriverLookupError(FatalFixtureError):
    """Raised when checking for a deployed driver fails for a reason other than not-found."""

    def __init__(self, driver_name: str, status: int | None, reason: str) -> None:
        self.driver_name = driver_name
        self.status = status
        self.reason = reason
        super().__init__(
            f"getting csidriver {driver_name} failed (status={status or 'unknown'}): {reason}"
        )


class LeaderSetupFailed(FatalFixtureError):
    """Raised on a follower when the leader's setup failed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Shared fixture setup failed on the leader: {reason}")


# ---------------------------------------------------------------------------
# Test Case Exceptions
# ---------------------------------------------------------------------------


class PodFailedError(TestCaseError):
    """Raised when a pod reaches a phase the caller was not waiting for."""

    def __init__(self, namespace: str, name: str, phase: str, expected: str) -> None:
        self.namespace = namespace
        self.name = name
        self.phase = phase
        self.expected = expected
        super().__init__(
            f"Pod {namespace}/{name} entered phase {phase} while waiting for {expected}"
        )


class WaitTimeoutError(TestCaseError, TimeoutError):
    """Raised when a bounded wait exceeds its timeout."""

    def __init__(self, description: str, timeout: float, last_state: Any = None) -> None:
        self.description = description
        self.timeout = timeout
        self.last_state = last_state
        msg = f"Timed out after {timeout:.0f}s waiting for {description}"
        if last_state is not None:
            msg += f" (last state: {last_state})"
        super().__init__(msg)


# ---------------------------------------------------------------------------
# Cleanup Exceptions
# ---------------------------------------------------------------------------


class CleanupError(EFSE2EError):
    """
    Raised after a chain of best-effort cleanups when one or more failed.

    Attributes:
        errors: (description, exception) pairs, in the order the cleanups ran
    """

    def __init__(self, errors: list[tuple[str, BaseException]]) -> None:
        if not errors:
            raise ValueError("CleanupError requires at least one error")
        self.errors = errors
        details = "; ".join(f"{desc}: {exc}" for desc, exc in errors)
        super().__init__(f"{len(errors)} cleanup action(s) failed: {details}")


class TeardownError(CleanupError):
    """
    Raised when suite teardown fails to remove a resource it owns.

    Reported as a suite-level failure so leaked cloud resources are
    noticed; it never re-fails test cases that already completed.
    """

    pass


# ---------------------------------------------------------------------------
# Codec Exceptions
# ---------------------------------------------------------------------------


class InvalidSubpathError(EFSE2EError, ValueError):
    """Raised when a subpath cannot be encoded into a volume handle."""

    def __init__(self, subpath: str, reason: str) -> None:
        self.subpath = subpath
        self.reason = reason
        super().__init__(f"Invalid subpath {subpath!r}: {reason}")


# ---------------------------------------------------------------------------
# Usage Exceptions
# ---------------------------------------------------------------------------


class FixtureNotResolvedError(EFSE2EError, RuntimeError):
    """Raised when the shared file system id is read before fixture setup."""

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"Cannot {action}: shared fixture has not been resolved")
