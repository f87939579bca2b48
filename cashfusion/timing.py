"""
Clock used for all fusion deadlines.

Everything in a round is timed relative to the monotonic receive time of
StartRound, while the server's declared unix time is compared against the
wall clock. Both go through one object so that tests can swap in a fake.
"""
import time

class Clock:
    def monotonic(self):
        return time.monotonic()

    def time(self):
        return time.time()

    def sleep(self, seconds):
        if seconds > 0:
            time.sleep(seconds)

    def sleep_until(self, t):
        """ Sleep until monotonic time `t`. """
        self.sleep(t - self.monotonic())

default_clock = Clock()
