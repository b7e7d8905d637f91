"""
Gateway error taxonomy.

None of these escape ``verify`` or ``stream``: the verifier turns them into a
failed ``ProbeResult`` and the engine into a terminal ``[Error: ...]``
fragment.  They exist so the internals can raise with a precise cause and the
boundary can render one sentence for a human.
"""

from __future__ import annotations


class ErrorCode:
    MISSING_CREDENTIAL = "missing_credential"
    MISSING_ENDPOINT = "missing_endpoint"
    NETWORK_UNREACHABLE = "network_unreachable"
    MIXED_CONTENT_BLOCKED = "mixed_content_blocked"
    CROSS_ORIGIN_BLOCKED = "cross_origin_blocked"
    BACKEND_HTTP_ERROR = "backend_http_error"
    DECODE_ERROR = "decode_error"
    CANCELLED = "cancelled"


class GatewayError(Exception):
    """Structured error raised inside the gateway."""

    code = ""

    def __init__(self, message: str, code: str = ""):
        super().__init__(message)
        self.code = code or self.code


class MissingCredential(GatewayError):
    code = ErrorCode.MISSING_CREDENTIAL


class MissingEndpoint(GatewayError):
    code = ErrorCode.MISSING_ENDPOINT


class NetworkUnreachable(GatewayError):
    code = ErrorCode.NETWORK_UNREACHABLE


class MixedContentBlocked(GatewayError):
    code = ErrorCode.MIXED_CONTENT_BLOCKED


class CrossOriginBlocked(GatewayError):
    """Inconclusive: the request was blocked, the credential may be fine."""

    code = ErrorCode.CROSS_ORIGIN_BLOCKED


class BackendHTTPError(GatewayError):
    code = ErrorCode.BACKEND_HTTP_ERROR

    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.status = status


class DecodeError(GatewayError):
    """A single frame could not be decoded.  Never fatal to a stream."""

    code = ErrorCode.DECODE_ERROR
