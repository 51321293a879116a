"""Channel characterization: impulse, frequency and Doppler spectrum views.

Everything here is derived from state owned elsewhere (path gains, channel
filter, Doppler filter output) and never writes back to it, so querying at any
time leaves the simulated random process untouched.
"""

import numpy as np
import numpy.typing as npt
from pydantic import BaseModel
from scipy import signal as scipy_signal

from fading_channel.config import Visualization
from fading_channel.errors import StateError, ValidationError
from fading_channel.spectra import DopplerSpectrum


def impulse_response_snapshot(
  delays_samples: npt.ArrayLike, gains: npt.ArrayLike
) -> list[tuple[float, complex]]:
  """Pair each path's delay (in output samples) with its current gain."""
  return [
    (float(delay), complex(gain))
    for delay, gain in zip(
      np.asarray(delays_samples), np.asarray(gains), strict=True
    )
  ]


def band_limited_impulse_response(
  coefficients: npt.NDArray[np.float64], gains: npt.ArrayLike
) -> npt.NDArray[np.complex128]:
  """Effective channel taps: path gains projected onto the channel filter."""
  return np.asarray(gains, dtype=np.complex128) @ coefficients


def frequency_response(
  taps: npt.ArrayLike, num_points: int
) -> npt.NDArray[np.complex128]:
  """Transfer function of the channel taps, DC centred.

  Args:
    taps: Band-limited impulse response.
    num_points: Number of frequency points; the taps are zero padded to it.

  Returns:
    Complex response at `frequency_grid(num_points, sample_rate)`.

  Raises:
    ValidationError: If fewer points than taps are requested.
  """
  taps = np.asarray(taps, dtype=np.complex128)
  if num_points < len(taps):
    msg = (
      f"Frequency response needs at least {len(taps)} points for this channel, "
      f"got {num_points}"
    )
    raise ValidationError(msg)
  return np.fft.fftshift(np.fft.fft(taps, n=num_points))


def frequency_grid(num_points: int, sample_rate: float) -> npt.NDArray[np.float64]:
  """Frequencies in Hz matching `frequency_response`."""
  return np.fft.fftshift(np.fft.fftfreq(num_points, d=1.0 / sample_rate))


class DopplerSpectrumEstimate(BaseModel):
  """Measured and theoretical Doppler spectrum of one path.

  Both spectra are power densities in 1/Hz on the same frequency grid, so
  `sum(empirical) * resolution` approximates the (unit) process power.

  Attributes:
    path_index: Path the estimate belongs to.
    frequencies: Frequency grid in Hz, ascending.
    empirical: Averaged periodogram of the fading process.
    theoretical: Target spectrum averaged over each frequency bin.
    num_segments: Number of periodogram segments averaged so far.
  """

  path_index: int
  frequencies: np.ndarray
  empirical: np.ndarray
  theoretical: np.ndarray
  num_segments: int

  model_config = {"frozen": True, "arbitrary_types_allowed": True}

  @property
  def resolution(self) -> float:
    return float(self.frequencies[1] - self.frequencies[0])

  @property
  def empirical_points(self) -> list[tuple[float, float]]:
    return list(zip(self.frequencies.tolist(), self.empirical.tolist(), strict=True))

  @property
  def theoretical_points(self) -> list[tuple[float, float]]:
    return list(
      zip(self.frequencies.tolist(), self.theoretical.tolist(), strict=True)
    )


class DopplerSpectrumEstimator:
  """Running periodogram of one path's Doppler filter output.

  Samples are collected into non-overlapping segments; each complete segment
  contributes one Hann-windowed periodogram to the running average. Memory is
  bounded by one segment.
  """

  def __init__(
    self,
    spectrum: DopplerSpectrum,
    max_doppler_shift: float,
    filter_rate: float,
    segment_length: int = 1024,
  ) -> None:
    self.spectrum = spectrum
    self.max_doppler_shift = max_doppler_shift
    self.filter_rate = filter_rate
    self.segment_length = segment_length
    self._pending = np.zeros(0, dtype=np.complex128)
    self._power_sum = np.zeros(segment_length)
    self._segments = 0

  @property
  def num_segments(self) -> int:
    return self._segments

  @property
  def frequencies(self) -> npt.NDArray[np.float64]:
    return frequency_grid(self.segment_length, self.filter_rate)

  def observe(self, samples: npt.NDArray[np.complex128]) -> None:
    """Account for newly generated Doppler filter samples."""
    pending = np.concatenate((self._pending, samples))
    complete = len(pending) // self.segment_length
    if complete:
      segments = pending[: complete * self.segment_length].reshape(
        complete, self.segment_length
      )
      _, power = scipy_signal.periodogram(
        segments,
        fs=self.filter_rate,
        window="hann",
        detrend=False,
        return_onesided=False,
        scaling="density",
        axis=-1,
      )
      self._power_sum += power.sum(axis=0)
      self._segments += complete
    self._pending = pending[complete * self.segment_length :].copy()

  def theoretical(self) -> npt.NDArray[np.float64]:
    """Target density averaged over each bin of the estimate's grid."""
    freqs = self.frequencies
    spacing = self.filter_rate / self.segment_length
    power = self.spectrum.band_power(
      freqs - spacing / 2, freqs + spacing / 2, self.max_doppler_shift
    )
    return power / spacing

  def estimate(self, path_index: int = 0) -> DopplerSpectrumEstimate:
    """Current averaged estimate.

    Raises:
      StateError: If no complete segment has been observed yet.
    """
    if self._segments == 0:
      msg = (
        f"No Doppler spectrum estimate for path {path_index} yet: "
        f"{len(self._pending)} of {self.segment_length} samples collected"
      )
      raise StateError(msg)
    return DopplerSpectrumEstimate(
      path_index=path_index,
      frequencies=self.frequencies,
      empirical=np.fft.fftshift(self._power_sum / self._segments),
      theoretical=self.theoretical(),
      num_segments=self._segments,
    )


class VisualizationSnapshot(BaseModel):
  """Point-in-time view of the channel, as selected by the visualization mode.

  Fields not requested by the mode are None. The Doppler spectrum is also None
  while the estimator has not completed its first segment.
  """

  mode: Visualization
  sample_index: int
  impulse_response: list[tuple[float, complex]] | None = None
  band_limited_response: np.ndarray | None = None
  frequencies: np.ndarray | None = None
  frequency_response: np.ndarray | None = None
  doppler_spectrum: DopplerSpectrumEstimate | None = None

  model_config = {"frozen": True, "arbitrary_types_allowed": True}
