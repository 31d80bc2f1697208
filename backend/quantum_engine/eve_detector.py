"""
Eavesdropper Detection

Decides whether a key exchange was intercepted from its quantum bit error
rate. In BB84 an eavesdropper's measurements disturb the states she
intercepts, which pushes QBER above the 11% bound past which privacy
amplification can no longer produce a secret key.

The QBER itself comes from a DisturbanceModel. The default model samples a
synthetic signal; a physical channel simulator or a provider feed can be
plugged in without touching the coordinators.
"""

import logging
import math
from abc import ABC, abstractmethod

from models import QBER_THRESHOLD, DetectionResult
from .secure_random import secure_uniform

logger = logging.getLogger(__name__)

ATTACK_QBER_RANGE = (0.12, 0.30)
BASELINE_QBER_MAX = 0.08


class DisturbanceModel(ABC):
    """Source of the observed QBER for one key exchange."""

    @abstractmethod
    def sample(self, quantum_entropy: float, size_bits: int, attack_enabled: bool) -> float:
        ...


class SampledDisturbanceModel(DisturbanceModel):
    """
    Synthetic channel.

    With an eavesdropper the error rate is drawn from an elevated band above
    the threshold. Without one it is drawn from a low baseline whose ceiling
    falls as entropy rises: a 0.99-entropy key tops out near 4%, a key at
    0.5 entropy or below can reach the full 8%.
    """

    def __init__(
        self,
        attack_range: tuple = ATTACK_QBER_RANGE,
        baseline_max: float = BASELINE_QBER_MAX,
    ):
        self._attack_range = attack_range
        self._baseline_max = baseline_max

    def baseline_ceiling(self, quantum_entropy: float) -> float:
        scale = min(max(1.5 - quantum_entropy, 0.5), 1.0)
        return self._baseline_max * scale

    def sample(self, quantum_entropy: float, size_bits: int, attack_enabled: bool) -> float:
        if attack_enabled:
            return secure_uniform(*self._attack_range)
        return secure_uniform(0.0, self.baseline_ceiling(quantum_entropy))


def calculate_confidence(qber: float) -> float:
    """Detection confidence; higher QBER means more certainty Eve was there."""
    if qber > 0.20:
        return 0.99
    if qber > 0.15:
        return 0.95
    if qber > QBER_THRESHOLD:
        return 0.85
    if qber > 0.08:
        return 0.60
    return 0.0


def is_intercepted(qber: float) -> bool:
    return qber > QBER_THRESHOLD


class EveDetector:

    def __init__(self, model: DisturbanceModel = None):
        self._model = model or SampledDisturbanceModel()

    def detect(
        self,
        quantum_entropy: float,
        size_bits: int,
        attack_enabled: bool,
    ) -> DetectionResult:
        """
        Run the eavesdropping check for one generated key.

        Args:
            quantum_entropy: Entropy score of the generated key
            size_bits: Key size in bits
            attack_enabled: Inject an eavesdropper on the channel

        Returns:
            DetectionResult with the clamped QBER and the verdict
        """
        qber = self._model.sample(quantum_entropy, size_bits, attack_enabled)
        result = self.evaluate(qber)

        if result.is_intercepted:
            logger.warning("EVE DETECTED! QBER: %.1f%% (%d-bit key)", result.qber * 100, size_bits)
        else:
            logger.debug("Channel clean, QBER: %.1f%%", result.qber * 100)

        return result

    def evaluate(self, qber: float) -> DetectionResult:
        """
        Verdict for an explicit QBER value.

        A QBER that is not a finite number is treated as maximal disturbance.
        """
        if not math.isfinite(qber):
            logger.error("Non-finite QBER %r, treating channel as compromised", qber)
            qber = 1.0
        qber = min(max(qber, 0.0), 1.0)

        if is_intercepted(qber):
            return DetectionResult(
                qber=qber,
                is_intercepted=True,
                message=f"Eavesdropping detected! QBER: {qber * 100:.1f}%",
                confidence=calculate_confidence(qber),
                detection_method="BB84-QBER-Analysis",
            )

        return DetectionResult(
            qber=qber,
            is_intercepted=False,
            message=f"Channel secure. QBER: {qber * 100:.1f}%",
            confidence=calculate_confidence(qber),
            detection_method="BB84-Privacy-Amplification",
        )
