"""Domain error taxonomy

Every public service operation raises exactly one of these. The ``error``
attribute is the kind name returned to API callers, ``code`` the HTTP
status it maps to.
"""

from typing import Any, Dict


class SmartProductError(Exception):
    """Base class for errors surfaced to callers as ``{code, error, message}``"""

    code = 500

    def __init__(self, error: str, message: str, code: int = None):
        super().__init__(message)
        self.error = error
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "error": self.error, "message": self.message}

    def __repr__(self):
        return f"<{type(self).__name__}(code={self.code}, error='{self.error}')>"


class InvalidRequestError(SmartProductError):
    """Caller-fixable input problems (InvalidParameter, InvalidSetting, BadRequest)"""

    code = 400


class NotFoundError(SmartProductError):
    """Missing records and failed preconditions"""

    code = 400


class ConflictError(SmartProductError):
    """Uniqueness violations

    Kept at 500 to match what existing clients receive for
    DeviceRegisteredFailure.
    """

    code = 500


class UpstreamError(SmartProductError):
    """Store or transport failures"""

    code = 500


class RollbackError(SmartProductError):
    """A compensating delete failed, leaving inconsistent data behind"""

    code = 500


class AccessDeniedError(SmartProductError):
    """The caller could not be authenticated"""

    code = 401

    def __init__(self, message: str):
        super().__init__("AccessDeniedException", message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "message": self.message}


class StoreError(Exception):
    """Raised by store backends when the underlying database call fails"""


class TransportError(Exception):
    """Raised by device transport, registry, identity and SMS collaborators"""


class ShadowNotFoundError(TransportError):
    """The device has no shadow document yet"""


def missing_registration(device_id: str) -> NotFoundError:
    return NotFoundError(
        "MissingRegistration", f'No registration found for device "{device_id}".'
    )
