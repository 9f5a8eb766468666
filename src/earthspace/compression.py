"""
earthspace - Gradient Compression

Sparsification and quantization of gradient vectors before they cross a
ground-orbit link.

LEO uplinks run at tens of Mbps with 20-40 ms of latency, so a dense fp32
gradient per round is rarely affordable. Top-K keeps the largest-magnitude
entries, quantization shrinks each kept value, and error feedback carries the
dropped mass into the next round so it isn't lost.

References:
- "Deep Gradient Compression" (Lin et al., 2018)
- "Sparsified SGD with Memory" (Stich et al., 2018)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, List, Sequence, Tuple
import logging
import random

from .errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_QUANTIZATION_BITS = (2, 4, 8, 16, 32)
BYTES_PER_FLOAT = 4
INDEX_BITS = 32


class CompressionMethod(Enum):
    """Gradient compression method."""
    NONE = "none"
    TOP_K = "topk"
    TOP_K_QUANTIZED = "topk_quantized"
    RANDOM_K = "random_k"
    QUANTIZATION = "quantization"

    @property
    def is_quantized(self) -> bool:
        return self in (CompressionMethod.TOP_K_QUANTIZED, CompressionMethod.QUANTIZATION)


@dataclass(frozen=True)
class CompressionConfig:
    """Configuration for gradient compression.

    Invalid values fail here, at construction, rather than on first use.

    Attributes:
        method: Compression method to use
        k_ratio: Fraction of entries to keep, in (0, 1]
        quantization_bits: Bits per kept value for quantized methods
        error_feedback: Carry the compression residual into the next call
        seed: Seed for random-k selection (None = nondeterministic)
    """
    method: CompressionMethod = CompressionMethod.TOP_K_QUANTIZED
    k_ratio: float = 0.01
    quantization_bits: int = 8
    error_feedback: bool = True
    seed: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.method, CompressionMethod):
            raise ValidationError("method", f"Unknown compression method: {self.method!r}")
        if not 0 < self.k_ratio <= 1.0:
            raise ValidationError("k_ratio", "Must be in the interval (0, 1]")
        if self.quantization_bits not in ALLOWED_QUANTIZATION_BITS:
            raise ValidationError("quantization_bits", "Must be 2, 4, 8, 16, or 32")

    @property
    def bits_per_value(self) -> int:
        """Bits spent on each transmitted value."""
        return self.quantization_bits if self.method.is_quantized else 32

    @property
    def theoretical_compression_ratio(self) -> float:
        """Expected compressed/original size ratio (smaller = more compression).

        Counts a 32-bit index per kept value; headers and wire framing are
        not included.
        """
        if self.method == CompressionMethod.NONE:
            return 1.0
        return self.k_ratio * (self.bits_per_value + INDEX_BITS) / 32

    @classmethod
    def high_compression(cls) -> "CompressionConfig":
        """Top 0.1% at 4 bits."""
        return cls(
            method=CompressionMethod.TOP_K_QUANTIZED,
            k_ratio=0.001,
            quantization_bits=4,
            error_feedback=True,
        )

    @classmethod
    def balanced(cls) -> "CompressionConfig":
        """Top 1% at 8 bits."""
        return cls(
            method=CompressionMethod.TOP_K_QUANTIZED,
            k_ratio=0.01,
            quantization_bits=8,
            error_feedback=True,
        )

    @classmethod
    def low_compression(cls) -> "CompressionConfig":
        """Dense 16-bit quantization for high-bandwidth links."""
        return cls(
            method=CompressionMethod.QUANTIZATION,
            k_ratio=1.0,
            quantization_bits=16,
            error_feedback=False,
        )


@dataclass
class CompressedGradient:
    """Sparse, possibly quantized gradient.

    Attributes:
        indices: Positions of the kept entries
        values: Kept values, aligned with ``indices``
        shape: Shape of the original vector
        original_size: Length of the original vector
        compressed_size: Estimated encoded size in bytes
        compression_ratio: compressed_size / dense fp32 size
        quantization_bits: Bit width used, if values were quantized
    """
    indices: List[int]
    values: List[float]
    shape: Tuple[int, ...]
    original_size: int
    compressed_size: int
    compression_ratio: float
    quantization_bits: Optional[int] = None

    @property
    def num_selected(self) -> int:
        return len(self.indices)

    @property
    def sparsity(self) -> float:
        """Fraction of entries dropped."""
        if self.original_size == 0:
            return 0.0
        return 1.0 - len(self.indices) / self.original_size

    def to_dense(self, size: Optional[int] = None) -> List[float]:
        """Zero-filled dense vector; entries past ``size`` are dropped."""
        size = self.original_size if size is None else size
        dense = [0.0] * size
        for i, v in zip(self.indices, self.values):
            if i < size:
                dense[i] = v
        return dense


def quantize(values: Sequence[float], bits: int) -> List[float]:
    """Snap values onto ``2**bits`` evenly spaced levels between min and max.

    A zero range leaves the values unchanged.
    """
    values = list(values)
    if not values:
        return values

    min_val = min(values)
    max_val = max(values)
    range_val = max_val - min_val
    if range_val == 0:
        return values

    scale = range_val / (2 ** bits - 1)
    return [min_val + round((v - min_val) / scale) * scale for v in values]


class GradientCompressor:
    """Compress gradients for bandwidth-efficient synchronization.

    One compressor per node: with error feedback on, the instance keeps the
    residual of the previous call and adds it to the next input.

    Example:
        >>> compressor = GradientCompressor(CompressionConfig.balanced())
        >>> compressed = compressor.compress([0.1, 0.001, 0.5, -0.2, 0.002, 0.8])
        >>> compressed.indices
        [5]
    """

    def __init__(self, config: CompressionConfig):
        self.config = config
        self._rng = random.Random(config.seed)
        self._residual: Optional[List[float]] = None

    @property
    def residual(self) -> Optional[List[float]]:
        """Copy of the stored error-feedback residual, if any."""
        return list(self._residual) if self._residual is not None else None

    def reset(self) -> None:
        """Forget the error-feedback residual."""
        self._residual = None

    def compress(self, gradients: Sequence[float]) -> CompressedGradient:
        """Compress a gradient vector with the configured method."""
        n = len(gradients)
        if n == 0:
            raise ValidationError("gradients", "Cannot compress an empty vector")

        working = self._apply_error_feedback(gradients)
        method = self.config.method

        if method == CompressionMethod.NONE:
            indices = list(range(n))
            values = list(working)
            compressed_size = n * BYTES_PER_FLOAT
        else:
            k = max(1, int(n * self.config.k_ratio))
            if method in (CompressionMethod.TOP_K, CompressionMethod.TOP_K_QUANTIZED):
                indices = self._select_top_k(working, k)
            elif method in (CompressionMethod.RANDOM_K, CompressionMethod.QUANTIZATION):
                indices = self._select_random_k(n, k)
            else:
                raise ValidationError("method", f"Unsupported compression method: {method}")

            values = [working[i] for i in indices]
            if method.is_quantized:
                values = quantize(values, self.config.quantization_bits)
            compressed_size = k * (INDEX_BITS + self.config.bits_per_value) // 8

        if self.config.error_feedback:
            reconstructed = [0.0] * n
            for i, v in zip(indices, values):
                reconstructed[i] = v
            self._residual = [g - r for g, r in zip(working, reconstructed)]

        logger.debug(
            "Compressed %d -> %d entries (%s, %d bytes)",
            n, len(indices), method.value, compressed_size,
        )

        return CompressedGradient(
            indices=indices,
            values=values,
            shape=(n,),
            original_size=n,
            compressed_size=compressed_size,
            compression_ratio=compressed_size / (n * BYTES_PER_FLOAT),
            quantization_bits=self.config.quantization_bits if method.is_quantized else None,
        )

    def decompress(self, compressed: CompressedGradient) -> List[float]:
        """Dense reconstruction, zero outside the kept indices."""
        return compressed.to_dense()

    def _apply_error_feedback(self, gradients: Sequence[float]) -> List[float]:
        if not self.config.error_feedback or self._residual is None:
            return list(gradients)
        if len(self._residual) != len(gradients):
            logger.warning(
                "Gradient length changed (%d -> %d); dropping error-feedback residual",
                len(self._residual), len(gradients),
            )
            self._residual = None
            return list(gradients)
        return [g + e for g, e in zip(gradients, self._residual)]

    @staticmethod
    def _select_top_k(values: Sequence[float], k: int) -> List[int]:
        # sorted() is stable, so equal magnitudes keep ascending index order
        order = sorted(range(len(values)), key=lambda i: -abs(values[i]))
        return order[:k]

    def _select_random_k(self, n: int, k: int) -> List[int]:
        indices = list(range(n))
        # Fisher-Yates
        for i in range(n - 1, 0, -1):
            j = self._rng.randint(0, i)
            indices[i], indices[j] = indices[j], indices[i]
        return indices[:k]
