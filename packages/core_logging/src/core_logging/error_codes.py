from enum import Enum

class ErrorCode(str, Enum):
    """
    Canonical error codes for the public error envelope and for
    ``record_error`` crumbs.
    """
    payload_invalid           = "payload_invalid"
    payload_unencodable       = "payload_unencodable"
    entry_not_found           = "entry_not_found"
    batch_fetch_failed        = "batch_fetch_failed"
    expansion_partial         = "expansion_partial"
    validation_failed         = "validation_failed"
    upstream_error            = "upstream_error"
    internal                  = "internal"

__all__ = ["ErrorCode"]
