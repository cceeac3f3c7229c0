"""Test helpers: a manual clock and response builders."""

from countdown_sync.sync_protocol import SyncResponse

NOW = 1_700_000_000_000


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


def response(e, s, t=None) -> SyncResponse:
    payload = {"e": e, "s": s}
    if t is not None:
        payload["t"] = t
    return SyncResponse.decode(payload)
