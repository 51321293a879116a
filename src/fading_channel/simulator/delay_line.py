"""Tapped delay line applying time-varying path gains to a sample stream.

The output is

  y[n] = sum_p g_p[n] * sum_m C[p, m] * x[n - m]

where C is the channel filter: one row per path that realizes the path's
delay. Integer delays give exact unit impulses. Fractional delays use a
windowed-sinc interpolator of half length N, which makes the filter
non-causal by N samples; the whole channel output is then delayed by N
samples (the channel filter delay) and the first N outputs of a stream are a
start-up transient against the zero-initialized history.

The same coefficient matrix is used by the characterization module so the
reported impulse response is exactly the filter applied to the stream.
"""

import logging

import numpy as np
import numpy.typing as npt

from fading_channel.config import INTEGER_DELAY_TOLERANCE, ChannelConfig, DelayPolicy

logger = logging.getLogger(__name__)


def _is_integral(delays: npt.NDArray[np.float64]) -> npt.NDArray[np.bool_]:
  return np.abs(delays - np.floor(delays + 0.5)) <= INTEGER_DELAY_TOLERANCE


def channel_filter(
  delays_samples: npt.ArrayLike,
  policy: DelayPolicy = DelayPolicy.SINC,
  half_length: int = 8,
) -> tuple[npt.NDArray[np.float64], int]:
  """Build the per-path delay filters.

  Args:
    delays_samples: Path delays in (fractional) samples.
    policy: ROUND snaps delays to the nearest sample; SINC interpolates.
    half_length: Half length N of the sinc interpolator.

  Returns:
    Tuple of (coefficients of shape (num_paths, length), channel filter delay
    in samples).
  """
  delays = np.asarray(delays_samples, dtype=np.float64)
  num_paths = len(delays)
  integral = _is_integral(delays)

  if policy == DelayPolicy.ROUND or bool(np.all(integral)):
    taps = np.floor(delays + 0.5).astype(np.int64)
    coefficients = np.zeros((num_paths, int(taps.max()) + 1))
    coefficients[np.arange(num_paths), taps] = 1.0
    return coefficients, 0

  filter_delay = half_length
  length = int(np.floor(delays.max())) + 2 * half_length + 2
  offsets = np.arange(length)[np.newaxis, :] - filter_delay - delays[:, np.newaxis]

  # Raised-cosine window reaching zero at +/-(N + 1)
  support = half_length + 1
  window = np.where(
    np.abs(offsets) < support, 0.5 * (1.0 + np.cos(np.pi * offsets / support)), 0.0
  )
  coefficients = np.sinc(offsets) * window
  coefficients /= coefficients.sum(axis=1, keepdims=True)

  for path in np.flatnonzero(integral):
    coefficients[path] = 0.0
    coefficients[path, int(np.floor(delays[path] + 0.5)) + filter_delay] = 1.0

  return coefficients, filter_delay


class TapDelayLine:
  """Streaming convolution engine with carried history.

  Attributes:
    delays_samples: Path delays in samples as realized (rounded under ROUND).
    coefficients: Channel filter, shape (num_paths, length).
    filter_delay: Extra delay in samples introduced by interpolation.
  """

  def __init__(
    self,
    delays_samples: npt.ArrayLike,
    policy: DelayPolicy = DelayPolicy.SINC,
    half_length: int = 8,
  ) -> None:
    delays = np.asarray(delays_samples, dtype=np.float64)
    if policy == DelayPolicy.ROUND:
      delays = np.floor(delays + 0.5)
    self.delays_samples = delays
    self.policy = policy
    self.half_length = half_length
    self.coefficients, self.filter_delay = channel_filter(
      delays, policy, half_length
    )

    # Only the non-zero taps of each path are visited when processing
    self._sparse = []
    for row in self.coefficients:
      taps = np.flatnonzero(row)
      self._sparse.append((taps, row[taps]))

    self._history = np.zeros(self.length - 1, dtype=np.complex128)

    if self.filter_delay:
      logger.debug(
        f"Fractional path delays: sinc interpolation, half length {half_length}, "
        f"channel filter delay {self.filter_delay} samples"
      )

  @classmethod
  def from_config(cls, config: ChannelConfig) -> "TapDelayLine":
    return cls(
      config.path_delays_samples,
      config.delay_policy,
      config.interpolation_half_length,
    )

  @property
  def length(self) -> int:
    return self.coefficients.shape[1]

  @property
  def num_paths(self) -> int:
    return self.coefficients.shape[0]

  @property
  def output_delays(self) -> npt.NDArray[np.float64]:
    """Position of each path in the output stream, in samples."""
    return self.delays_samples + self.filter_delay

  @property
  def history(self) -> npt.NDArray[np.complex128]:
    return self._history.copy()

  def same_geometry(self, config: ChannelConfig) -> bool:
    """Whether `config` realizes exactly the same channel filter."""
    delays = config.path_delays_samples
    if config.delay_policy == DelayPolicy.ROUND:
      delays = np.floor(delays + 0.5)
    return (
      config.delay_policy == self.policy
      and config.interpolation_half_length == self.half_length
      and np.array_equal(delays, self.delays_samples)
    )

  def carry_history_from(self, other: "TapDelayLine") -> None:
    """Continue the stream of another delay line (after a delay change)."""
    keep = min(len(self._history), len(other._history))
    self._history[:] = 0.0
    if keep:
      self._history[-keep:] = other._history[-keep:]

  def reset(self) -> None:
    self._history[:] = 0.0

  def process(
    self,
    samples: npt.NDArray[np.complex128],
    gains: npt.NDArray[np.complex128],
  ) -> npt.NDArray[np.complex128]:
    """Apply the channel to a block of samples.

    Args:
      samples: Input block, shape (count,).
      gains: Path gains for every sample of the block, shape (count, num_paths).

    Returns:
      Output block, shape (count,).
    """
    count = len(samples)
    if gains.shape != (count, self.num_paths):
      msg = f"Expected gains of shape {(count, self.num_paths)}, got {gains.shape}"
      raise ValueError(msg)

    extended = np.concatenate((self._history, samples))
    start = self.length - 1

    output = np.zeros(count, dtype=np.complex128)
    for path, (taps, weights) in enumerate(self._sparse):
      delayed = np.zeros(count, dtype=np.complex128)
      for tap, weight in zip(taps, weights, strict=True):
        delayed += weight * extended[start - tap : start - tap + count]
      output += gains[:, path] * delayed

    if start:
      self._history = extended[-start:].copy()
    return output
