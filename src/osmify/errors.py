"""Full error hierarchy for the osmify library.

Every public error class inherits from OsmifyError. Each carries a
machine-readable ``code`` (from :class:`ErrorCode`), a human-readable
``message``, an optional structured ``context`` dict, and an optional
``cause`` (chained exception).

Error codes are defined as a :class:`str` enum so that they serialise
naturally to JSON and can be matched with simple ``==`` comparisons.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error the library can raise."""

    # Element store / diff builder
    DUPLICATE_IDENTIFIER = "DUPLICATE_IDENTIFIER"
    ELEMENT_NOT_FOUND = "ELEMENT_NOT_FOUND"
    STALE_MAPPING = "STALE_MAPPING"
    UNKNOWN_ELEMENT = "UNKNOWN_ELEMENT"
    ALREADY_DELETED = "ALREADY_DELETED"
    DANGLING_REFERENCE = "DANGLING_REFERENCE"
    # Changeset session
    ALREADY_OPEN = "ALREADY_OPEN"
    CHANGESET_NOT_OPEN = "CHANGESET_NOT_OPEN"
    CHANGESET_CLOSED = "CHANGESET_CLOSED"
    INDETERMINATE_STATE = "INDETERMINATE_STATE"
    EDIT_CONFLICT = "EDIT_CONFLICT"
    RECONCILIATION_FAILED = "RECONCILIATION_FAILED"
    # Transport
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    PERMISSION_ERROR = "PERMISSION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    GONE = "GONE"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    NETWORK_ERROR = "NETWORK_ERROR"
    CODEC_ERROR = "CODEC_ERROR"
    # Misc
    COORDINATE_ERROR = "COORDINATE_ERROR"
    FEATURE_DISABLED = "FEATURE_DISABLED"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class OsmifyError(Exception):
    """Base exception for all osmify errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
        Keys and expected types are documented per subclass.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


class _CodedError(OsmifyError):
    """Shared constructor for subclasses bound to a single error code."""

    _code: ErrorCode = ErrorCode.TRANSPORT_ERROR

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=self._code,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Element store / diff builder errors
# ---------------------------------------------------------------------------

class OsmifyDuplicateIdentifierError(_CodedError):
    """An element with the same type and id is already tracked by the store.

    Context keys: ``element_type``, ``element_id``.
    """

    _code = ErrorCode.DUPLICATE_IDENTIFIER


class OsmifyElementNotFoundError(_CodedError):
    """The requested element is not tracked by the store.

    Context keys: ``element_type``, ``element_id``, ``deleted``.
    """

    _code = ErrorCode.ELEMENT_NOT_FOUND


class OsmifyStaleMappingError(_CodedError):
    """An identity mapping targets an element the store no longer tracks.

    Context keys: ``element_type``, ``old_id``.
    """

    _code = ErrorCode.STALE_MAPPING


class OsmifyUnknownElementError(_CodedError):
    """A modify or delete referenced an element that was never registered
    or that was already deleted in the current batch.

    Context keys: ``element_type``, ``element_id``.
    """

    _code = ErrorCode.UNKNOWN_ELEMENT


class OsmifyAlreadyDeletedError(_CodedError):
    """A delete was added twice for the same element in one batch.

    Context keys: ``element_type``, ``element_id``.
    """

    _code = ErrorCode.ALREADY_DELETED


class OsmifyDanglingReferenceError(_CodedError):
    """A way or relation references an element that is neither committed
    nor created in the same batch.

    Context keys: ``element_type``, ``element_id``, ``missing``.
    """

    _code = ErrorCode.DANGLING_REFERENCE


# ---------------------------------------------------------------------------
# Changeset session errors
# ---------------------------------------------------------------------------

class OsmifyAlreadyOpenError(_CodedError):
    """``open`` was called on a session that is not unopened.

    Context keys: ``changeset_id``, ``state``.
    """

    _code = ErrorCode.ALREADY_OPEN


class OsmifyChangesetNotOpenError(_CodedError):
    """An upload or close was attempted before the changeset was opened.

    Context keys: ``state``.
    """

    _code = ErrorCode.CHANGESET_NOT_OPEN


class OsmifyChangesetClosedError(_CodedError):
    """An upload was attempted after the changeset was closed.

    Context keys: ``changeset_id``, ``state``.
    """

    _code = ErrorCode.CHANGESET_CLOSED


class OsmifyIndeterminateStateError(_CodedError):
    """A previous upload was abandoned before its response was observed.

    The changeset must be re-fetched with ``refresh()`` before any further
    upload is issued.

    Context keys: ``changeset_id``.
    """

    _code = ErrorCode.INDETERMINATE_STATE


class OsmifyEditConflictError(OsmifyError):
    """The server rejected an edit based on a stale element version.

    The conflicting element must be re-fetched and the edit resubmitted;
    the library never merges conflicting edits.

    Context keys: ``element_type``, ``element_id``, ``expected_version``,
    ``actual_version``, ``conflicts`` (all conflicts reported by the server).
    """

    def __init__(
        self,
        message: str,
        element_type: str,
        element_id: int,
        expected_version: int | None,
        actual_version: int | None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.element_type = element_type
        self.element_id = element_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        ctx = {
            "element_type": element_type,
            "element_id": element_id,
            "expected_version": expected_version,
            "actual_version": actual_version,
        }
        ctx.update(context or {})
        super().__init__(
            code=ErrorCode.EDIT_CONFLICT,
            message=message,
            context=ctx,
            cause=cause,
        )


class OsmifyReconciliationError(_CodedError):
    """An upload response does not match the local state.

    The store is rolled back to its pre-reconciliation state.

    Context keys: ``element_type``, ``old_id``, ``reason``.
    """

    _code = ErrorCode.RECONCILIATION_FAILED


# ---------------------------------------------------------------------------
# Transport errors
# ---------------------------------------------------------------------------

class OsmifyTransportError(_CodedError):
    """Base class for failures reported by a transport adapter.

    Also used to wrap exceptions raised by custom adapters that do not
    derive from :class:`OsmifyError`.

    Context keys: ``operation``.
    """

    _code = ErrorCode.TRANSPORT_ERROR


class OsmifyValidationError(OsmifyTransportError):
    """OSM API returned 400 (or an unmapped 4xx) -- the request was invalid.

    Context keys: ``status_code``, ``body``.
    """

    _code = ErrorCode.VALIDATION_ERROR


class OsmifyAuthError(OsmifyTransportError):
    """OSM API returned 401 -- the access token is missing or invalid.

    Context keys: ``status_code``.
    """

    _code = ErrorCode.AUTH_ERROR


class OsmifyPermissionError(OsmifyTransportError):
    """OSM API returned 403 -- the token lacks the required scope, or the
    changeset belongs to another user.

    Context keys: ``status_code``, ``operation``.
    """

    _code = ErrorCode.PERMISSION_ERROR


class OsmifyNotFoundError(OsmifyTransportError):
    """OSM API returned 404 -- the element or changeset does not exist.

    Context keys: ``status_code``, ``path``.
    """

    _code = ErrorCode.NOT_FOUND


class OsmifyConflictError(OsmifyTransportError):
    """OSM API returned 409 for a reason other than a version mismatch
    (e.g. the changeset was closed server-side).

    Context keys: ``status_code``, ``body``.
    """

    _code = ErrorCode.CONFLICT


class OsmifyGoneError(OsmifyTransportError):
    """OSM API returned 410 -- the element has been deleted.

    Context keys: ``status_code``, ``path``.
    """

    _code = ErrorCode.GONE


class OsmifyPreconditionFailedError(OsmifyTransportError):
    """OSM API returned 412 -- e.g. deleting a node still used by a way.

    Context keys: ``status_code``, ``body``.
    """

    _code = ErrorCode.PRECONDITION_FAILED


class OsmifyRetryExhaustedError(OsmifyTransportError):
    """All retry attempts have been exhausted for an idempotent request.

    Context keys: ``attempts``, ``last_status_code``.
    """

    _code = ErrorCode.RETRY_EXHAUSTED


class OsmifyNetworkError(OsmifyTransportError):
    """A transport-level failure occurred (timeout, DNS, connection reset).

    Context keys: ``url``, ``attempt``, ``idempotent``.
    """

    _code = ErrorCode.NETWORK_ERROR


class OsmifyCodecError(OsmifyTransportError):
    """A response body could not be decoded.

    Context keys: ``reason``.
    """

    _code = ErrorCode.CODEC_ERROR


# ---------------------------------------------------------------------------
# Miscellaneous
# ---------------------------------------------------------------------------

class OsmifyCoordinateError(_CodedError):
    """A coordinate is out of range, or bounding-box corners are misordered.

    Context keys: ``value``, ``range`` or ``south_west``, ``north_east``.
    """

    _code = ErrorCode.COORDINATE_ERROR


class OsmifyFeatureDisabledError(_CodedError):
    """An optional feature was used without being enabled in the config.

    Context keys: ``feature``.
    """

    _code = ErrorCode.FEATURE_DISABLED
