"""Upload Error Codes - standardized failure classification.

Hey future me - every per-file failure lands in exactly one of these buckets, and
the bucket decides the retry policy:

TRANSIENT_NETWORK: connectivity is down. The driver waits (forever, until the network
    is back or the run is aborted) before it even tries.
TRANSIENT_SERVER: the remote returned an error for the upload call. Bounded retry with
    a fixed backoff, then the entry is marked errored.
SIZE_LIMIT: the file is larger than the remote accepts. No retry, no network call.
UNEXPECTED: anything else blowing up during check-or-upload. Bounded outer retry,
    then we fall back to a fresh upload attempt.

Fuzzy-match ambiguity is NOT an error - it simply resolves to "not present".
"""

from enum import StrEnum


class UploadErrorCode(StrEnum):
    """Standardized error codes for reconciliation failures."""

    TRANSIENT_NETWORK = "transient_network"
    TRANSIENT_SERVER = "transient_server"
    SIZE_LIMIT = "size_limit"
    UNEXPECTED = "unexpected"
