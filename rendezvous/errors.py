"""
Error taxonomy for the reply rendezvous.

None of these are fatal to the process. Each one ends the operation that
raised it and is reported back to the caller as-is.
"""


class RendezvousError(Exception):
    """Base class for rendezvous errors."""
    pass


class ReplyTimeout(RendezvousError, TimeoutError):
    """No reply was routed to the active wait before its deadline."""

    def __init__(self, wait_id: str, timeout_seconds: float):
        self.wait_id = wait_id
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Timeout waiting for user reply after {timeout_seconds:g}s")


class ConcurrentWaitConflict(RendezvousError):
    """A wait was requested while another one is still outstanding."""

    def __init__(self, wait_id: str):
        self.wait_id = wait_id
        super().__init__(
            f"Already waiting for a reply (wait {wait_id}); "
            "only one ask_user request can be pending at a time"
        )


class WaitCancelled(RendezvousError):
    """The active wait was cancelled before a reply arrived."""

    def __init__(self, wait_id: str, reason: str = "cancelled"):
        self.wait_id = wait_id
        self.reason = reason
        super().__init__(f"Wait {wait_id} cancelled: {reason}")


class TransportUnavailable(RendezvousError):
    """Inbound transport could not be started; running in send-only mode."""
    pass
