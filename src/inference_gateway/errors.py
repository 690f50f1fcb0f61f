class GatewayError(Exception):
    """Base for errors that map to a gateway response envelope."""

    status_code: int = 500
    code: str = "gateway_error"
    message: str = "Gateway error"

    def __init__(self, detail: str = "", message: str | None = None):
        super().__init__(detail or self.message)
        self.detail = detail or self.message
        if message is not None:
            self.message = message


class InvalidRequestError(GatewayError):
    status_code = 400
    code = "invalid_request"
    message = "Invalid request"

    def __init__(self, detail: str = "", code: str | None = None):
        super().__init__(detail)
        if code is not None:
            self.code = code


class InvalidModelError(GatewayError):
    status_code = 404
    code = "invalid_model"
    message = "Invalid model"

    def __init__(self, model: str, available: list[str] | None = None):
        names = ", ".join(available or []) or "(none)"
        super().__init__(f"Model '{model}' not found. Available: {names}")
        self.model = model


class UpstreamError(GatewayError):
    status_code = 502
    code = "upstream_error"
    message = "Backend error"


class StreamDecodeError(UpstreamError):
    code = "decode_error"
    message = "Error decoding backend stream"


class IncompleteStreamError(UpstreamError):
    code = "incomplete_stream"
    message = "Backend stream ended before completion"


class DispatchTimeoutError(GatewayError):
    status_code = 504
    code = "timeout"
    message = "Error Timeout"

    def __init__(self, timeout: float):
        super().__init__(f"Backend did not respond within {timeout:g}s")
        self.timeout = timeout


class StreamingUnsupportedError(GatewayError):
    status_code = 500
    code = "streaming_not_supported"
    message = "Streaming not supported"


class NotInitializedError(GatewayError):
    status_code = 503
    code = "not_initialized"
    message = "Service not initialized"
