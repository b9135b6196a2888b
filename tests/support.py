"""
Test doubles for randomness and sleeping in the delivery pipeline.
"""
import random


class FixedRandom(random.Random):
    """Random source whose random() always returns the same roll."""

    def __init__(self, roll: float):
        super().__init__(0)
        self.roll = roll

    def random(self):
        return self.roll


async def no_sleep(seconds):
    return None


class RecordingSleep:
    """Async sleep stand-in that records requested durations."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)
