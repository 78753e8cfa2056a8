"""Opaque volume handles addressing subdirectories of one EFS file system.

A handle is the file system id, optionally followed by ``:`` and a subpath.
The driver consumes the encoded form directly; decoding is only used when
logging which directory a volume points at.
"""

from .exceptions import InvalidSubpathError

SEPARATOR = ":"


def validate_subpath(subpath: str) -> None:
    """
    Validate a subpath before it is encoded.

    Raises:
        InvalidSubpathError: If the subpath contains the separator
    """
    if SEPARATOR in subpath:
        raise InvalidSubpathError(subpath, f"must not contain {SEPARATOR!r}")


def encode(file_system_id: str, subpath: str = "") -> str:
    """
    Build a volume handle for ``subpath`` of ``file_system_id``.

    An empty subpath addresses the file system root and yields the id unchanged.

    Example:
        >>> encode("fs-0123", "/a")
        'fs-0123:/a'
        >>> encode("fs-0123")
        'fs-0123'
    """
    if not file_system_id:
        raise ValueError("file_system_id cannot be empty")
    if SEPARATOR in file_system_id:
        raise ValueError(f"file_system_id must not contain {SEPARATOR!r}: {file_system_id!r}")
    validate_subpath(subpath)

    if not subpath:
        return file_system_id
    return f"{file_system_id}{SEPARATOR}{subpath}"


def decode(handle: str) -> tuple[str, str]:
    """Split a volume handle into ``(file_system_id, subpath)``."""
    file_system_id, _, subpath = handle.partition(SEPARATOR)
    return file_system_id, subpath


def describe(handle: str) -> str:
    """Human-readable form of a handle for log messages."""
    file_system_id, subpath = decode(handle)
    return f"{file_system_id} (path {subpath or '/'})"
