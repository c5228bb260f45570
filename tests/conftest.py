"""Shared stub engines and images for the upscaler tests."""

import time

import numpy as np
import pytest

from png_upscale.inference import InferenceEngine


class DoublingEngine(InferenceEngine):
    """Replicates every source pixel into a 2x2 block (exact pixel doubling)."""

    def __init__(self):
        super().__init__(name="doubling")
        self.calls = []

    def _forward(self, chunk):
        self.calls.append(chunk.shape)
        return np.repeat(np.repeat(chunk, 2, axis=0), 2, axis=1)


class GarbageEngine(InferenceEngine):
    """Returns the right shape filled with noise, alpha included."""

    def _forward(self, chunk):
        h, w = chunk.shape[:2]
        rng = np.random.default_rng(h * 7919 + w)
        return rng.integers(0, 256, size=(2 * h, 2 * w, 4), dtype=np.uint8)


class FailingEngine(InferenceEngine):
    """Raises on every call."""

    def _forward(self, chunk):
        raise RuntimeError("engine exploded")


class NoneEngine(InferenceEngine):
    """Returns nothing, like the silent failure path of a broken runtime."""

    def _forward(self, chunk):
        return None


class WrongShapeEngine(InferenceEngine):
    """Returns a result one pixel short on each axis."""

    def _forward(self, chunk):
        h, w = chunk.shape[:2]
        return np.zeros((2 * h - 1, 2 * w - 1, 4), dtype=np.uint8)


class SlowEngine(DoublingEngine):
    """Doubling engine that sleeps before answering."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    def _forward(self, chunk):
        time.sleep(self.delay)
        return super()._forward(chunk)


def random_image(height, width, seed=0):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)


def doubled(image):
    return np.repeat(np.repeat(image, 2, axis=0), 2, axis=1)


@pytest.fixture
def doubling_engine():
    with DoublingEngine() as engine:
        yield engine
