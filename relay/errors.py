"""Error taxonomy shared by the checkout, verification and fulfillment flows.

Each error carries the HTTP status the web layer answers with. Messages are
shown to the caller as-is, including upstream detail.
"""


class RelayError(Exception):
    """Base error with an HTTP status"""

    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigError(RelayError):
    """A required setting is missing"""

    def __init__(self, setting: str):
        super().__init__(f"Server misconfigured: {setting} is not set.")
        self.setting = setting


class UpstreamError(RelayError):
    """Stripe, Discord or the peer site failed"""


class NoActivePriceError(UpstreamError):
    def __init__(self, product_id: str):
        super().__init__(f"No active price found for product {product_id}.")
        self.product_id = product_id


class VerificationFailed(UpstreamError):
    """Every attempt to read the session from Stripe failed"""


class ChatPlatformError(UpstreamError):
    """Discord call failed; `reason` tells the caller what to fix"""

    BOT_NOT_IN_SERVER = "bot_not_in_server"
    NETWORK = "network_error"
    ASSIGNMENT_FAILED = "assignment_failed"

    _statuses = {
        BOT_NOT_IN_SERVER: 503,
        NETWORK: 502,
        ASSIGNMENT_FAILED: 500,
    }

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason
        self.status = self._statuses.get(reason, 500)


class PaymentIncomplete(RelayError):
    """Payment not settled yet, the client may retry"""

    status = 402


class ValidationError(RelayError):
    status = 400


class NotFoundError(RelayError):
    status = 404


class UserNotFound(NotFoundError):
    def __init__(self, username: str):
        super().__init__(
            f"Could not find a unique member named '{username}' in the server. "
            f"Check the spelling and make sure you have joined."
        )
        self.username = username


class SignatureInvalid(RelayError):
    status = 400


class FulfillmentInProgress(RelayError):
    """The same session is being fulfilled by another request"""

    status = 409


class AlreadyFulfilled(RelayError):
    """The session was already fulfilled for someone else"""

    status = 409


class VoiceError(RelayError):
    pass


class VoiceTargetNotFound(VoiceError):
    status = 404


class VoiceConnectTimeout(VoiceError):
    status = 504
