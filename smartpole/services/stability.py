"""Sliding-window stability classification of load-cell readings."""

import random

from smartpole.domain.models import DeviceState


class StabilityDetector:
    """
    Classifies the current reading as stable or disturbed.

    Looks at the spread of the last few observed weights. With fewer than
    ``MIN_SAMPLES`` readings the previous classification is kept.
    """

    MIN_SAMPLES = 3
    MAX_SPREAD_G = 2.0
    MAX_NOISE_G = 2.0

    def __init__(self, state: DeviceState, rng: random.Random) -> None:
        self.state = state
        self.rng = rng

    def observe(self, observed_weight_g: float) -> bool:
        state = self.state
        state.stability_window.append(observed_weight_g)

        if len(state.stability_window) >= self.MIN_SAMPLES:
            spread = max(state.stability_window) - min(state.stability_window)
            state.is_stable = spread < self.MAX_SPREAD_G and state.movement_noise_g < self.MAX_NOISE_G

        return state.is_stable

    def reset(self) -> None:
        self.state.stability_window.clear()
        self.state.is_stable = False

    def stability_score(self) -> float:
        """Presentation-only confidence figure; has no control influence."""
        if self.state.is_stable:
            return 90.0 + self.rng.random() * 10.0
        return self.rng.random() * 50.0
