"""
Exceptions raised by the voucher lifecycle engine
"""


class VoucherError(Exception):
    """Base class for voucher engine errors"""

    code = "voucher_error"

    def __init__(self, message="", code=None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class InvalidTransition(VoucherError):
    """A voucher was asked to move to a state it cannot reach from its current one"""

    code = "invalid_transition"

    def __init__(self, voucher_id, from_states, to_state):
        self.voucher_id = voucher_id
        self.from_states = tuple(from_states)
        self.to_state = to_state
        super().__init__(
            f"Voucher {voucher_id} cannot move to '{to_state}' "
            f"(expected one of {', '.join(self.from_states)})"
        )


class DeviceError(VoucherError):
    """A single call to the router failed"""

    code = "device_error"


class DeviceOfflineError(DeviceError):
    """The router could not be reached at all"""

    code = "device_offline"

    def __init__(self, router, reason=""):
        self.router = router
        self.reason = str(reason)
        super().__init__(
            f"Router {router.name} ({router.host}:{router.port}) is unreachable: {self.reason}"
        )
