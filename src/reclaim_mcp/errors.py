"""Error taxonomy for recovery sessions."""

from __future__ import annotations

from pathlib import Path


class RecoveryError(RuntimeError):
    """Base class for recovery session failures."""

    kind = "recovery_error"

    def as_dict(self) -> dict[str, object]:
        return {"kind": self.kind, "message": str(self)}


class BinaryNotFound(RecoveryError):
    """Raised when an engine binary cannot be located."""

    kind = "binary_not_found"

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Could not find the '{name}' binary. Install TestDisk/PhotoRec or set its path in the settings."
        )
        self.name = name


class InsufficientPermissions(RecoveryError):
    kind = "insufficient_permissions"

    def __init__(self) -> None:
        super().__init__(
            "The recovery engine was denied access to the device. Grant raw disk access and try again."
        )


class DeviceNotFound(RecoveryError):
    kind = "device_not_found"

    def __init__(self, device_id: str) -> None:
        super().__init__(f"The device '{device_id}' is no longer available.")
        self.device_id = device_id


class OutputDirectoryNotWritable(RecoveryError):
    kind = "output_directory_not_writable"

    def __init__(self, path: Path) -> None:
        super().__init__(f"Cannot write to the output directory: {path}. Please choose a different location.")
        self.path = Path(path)


class ProcessExitedUnexpectedly(RecoveryError):
    kind = "process_exited_unexpectedly"

    def __init__(self, code: int) -> None:
        super().__init__(f"The recovery engine exited unexpectedly with code {code}.")
        self.code = code

    def as_dict(self) -> dict[str, object]:
        return {**super().as_dict(), "code": self.code}


class SessionActiveError(RuntimeError):
    """Raised when a second session is started while one is still active."""


__all__ = [
    "BinaryNotFound",
    "DeviceNotFound",
    "InsufficientPermissions",
    "OutputDirectoryNotWritable",
    "ProcessExitedUnexpectedly",
    "RecoveryError",
    "SessionActiveError",
]
