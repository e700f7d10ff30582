from .fingerprints import *
from .ids import *
from . import jsonx

__all__ = [
    "sha256_hex", "ensure_sha256_prefix", "payload_fp",
    "generate_request_id", "request_id_from",
    "jsonx",
]
