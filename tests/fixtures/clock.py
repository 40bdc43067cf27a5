T0 = 1_000_000_000_000
MINUTE = 60 * 1000


class FakeClock:
    """Pinned, manually advanced millisecond clock."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int):
        self.now += millis
