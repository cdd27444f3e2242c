"""Error taxonomy for device flashing runs.

Every error carries an upper-case ``code`` and renders as ``CODE: detail``
in logs. Setup-phase errors (provisioning, image validation, discovery)
abort the whole run; ``FlashStepError`` and ``ToolError`` raised inside a
device's state machine only fail that device.
"""

from typing import Optional


class FlasherError(Exception):
    """Base class for all device flasher errors."""

    code = "FLASHER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def describe(self) -> str:
        return f"{self.code}: {self.message}"


class ProvisionError(FlasherError):
    code = "PROVISION_FAILED"


class NetworkError(ProvisionError):
    code = "DOWNLOAD_FAILED"


class IntegrityError(ProvisionError):
    code = "SHA256_MISMATCH"


class ToolNotFoundError(ProvisionError):
    code = "TOOL_NOT_FOUND"


class ExtractError(FlasherError):
    code = "EXTRACT_FAILED"


class ValidationError(FlasherError):
    code = "IMAGE_INVALID"


class ScriptNotFoundError(FlasherError):
    code = "SCRIPT_NOT_FOUND"


class DiscoveryError(FlasherError):
    code = "DISCOVERY_FAILED"


class NoDeviceError(DiscoveryError):
    code = "NO_DEVICE"


class CodenameUnresolvedError(DiscoveryError):
    code = "CODENAME_UNRESOLVED"


class ToolError(FlasherError):
    """A tool invocation failed to launch or exited non-zero."""

    code = "TOOL_FAILED"

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        output: str = "",
    ):
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class FlashStepError(FlasherError):
    code = "FLASH_STEP_FAILED"


class UnlockNotConfirmedError(FlashStepError):
    code = "UNLOCK_NOT_CONFIRMED"

    def __init__(self, message: str = "unlock not confirmed"):
        super().__init__(message)


class FlashScriptFailedError(FlashStepError):
    code = "FLASH_SCRIPT_FAILED"

    def __init__(self, message: str = "flash script exited non-zero"):
        super().__init__(message)


class LockNotConfirmedError(FlashStepError):
    code = "LOCK_NOT_CONFIRMED"

    def __init__(self, message: str = "lock not confirmed"):
        super().__init__(message)


class InvalidTransitionError(FlasherError):
    code = "INVALID_TRANSITION"


class StatusServerError(FlasherError):
    """The progress API could not bind its port."""

    code = "STATUS_PORT_UNAVAILABLE"
