"""Graceful error handling for reconciliation failures with user-friendly messages."""
from __future__ import annotations

import sys
import structlog

logger = structlog.get_logger(__name__)


class ReconcileError(Exception):
    """Base class for fatal reconciliation errors with user-friendly messaging."""

    def __init__(self, error_type: str, message: str, details: str = ""):
        self.error_type = error_type
        self.message = message
        self.details = details
        super().__init__(self.message)

    def get_user_message(self) -> str:
        """Return a user-friendly error message."""
        msg = f"\n{self.message}"
        if self.details:
            msg += f"\n   Details: {self.details}"
        return msg


class MalformedCatalogError(ReconcileError):
    """Catalog could not be parsed into controls at all."""

    def __init__(self, details: str):
        super().__init__(
            error_type="MALFORMED_CATALOG",
            message="Catalog could not be parsed into controls",
            details=details,
        )


class MalformedDocumentError(ReconcileError):
    """Prior SSP has no usable implemented-requirements structure."""

    def __init__(self, details: str):
        super().__init__(
            error_type="MALFORMED_DOCUMENT",
            message="Existing SSP could not be read",
            details=details,
        )


class DataLossError(ReconcileError):
    """A merge altered a user-owned field. Indicates an engine bug."""

    def __init__(self, control_id: str, fields: list[str]):
        self.control_id = control_id
        self.fields = fields
        super().__init__(
            error_type="DATA_LOSS",
            message=f"Merge of {control_id} would alter user-owned fields",
            details=", ".join(fields),
        )


def exit_with_error(error: ReconcileError, context: str = "") -> int:
    """Log error and exit gracefully with user-friendly message."""
    logger.error(
        "reconcile_failed",
        error_type=error.error_type,
        message=error.message,
        details=error.details,
        context=context,
    )

    print(error.get_user_message(), file=sys.stderr)

    print("\nNext steps:", file=sys.stderr)
    if isinstance(error, MalformedCatalogError):
        print("   1. Check that the file is an OSCAL catalog (JSON with a 'catalog' object)", file=sys.stderr)
        print("   2. Re-fetch the catalog from its published source", file=sys.stderr)
    elif isinstance(error, MalformedDocumentError):
        print("   1. Check that the file is an OSCAL SSP or an export produced by this tool", file=sys.stderr)
        print("   2. Run 'flatten' to start from the catalog alone", file=sys.stderr)
    else:
        print("   1. Re-run with --log-level DEBUG and report the output", file=sys.stderr)

    print("", file=sys.stderr)
    return 1
