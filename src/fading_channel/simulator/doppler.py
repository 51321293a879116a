"""Doppler filter bank: time-correlated complex Gaussian fading processes.

Each diffuse path owns a FadingProcess. White complex Gaussian noise is shaped
by an FIR filter whose magnitude response is the square root of the target
Doppler spectrum. The filter runs at a reduced rate, a few tens of times the
maximum Doppler shift, and its output is linearly interpolated up to the
channel sample rate. Generation cost per sample is therefore constant and
small, and memory is bounded by the filter length.

The number of random draws depends only on the total number of samples
generated, never on how the caller splits them into calls, so a process
produces the same sequence for any chunking of the input stream.

References:
  - D.J. Young & N.C. Beaulieu, "The generation of correlated Rayleigh random
    variates by inverse discrete Fourier transform", IEEE Trans. Commun., 2000
  - J.G. Proakis, "Digital Communications", 4th ed., Section 14.1
"""

import logging
from collections.abc import Iterator, Sequence

import numpy as np
import numpy.typing as npt
from scipy import signal as scipy_signal

from fading_channel.errors import NumericalError
from fading_channel.spectra import DopplerSpectrum

logger = logging.getLogger(__name__)


def interpolation_factor(
  sample_rate: float, max_doppler_shift: float, oversampling: int
) -> int:
  """Integer ratio between the sample rate and the Doppler filter rate.

  Raises:
    NumericalError: If the Doppler shift is too small for the ratio to be
      represented.
  """
  if max_doppler_shift == 0:
    return 1
  ratio = sample_rate // (oversampling * max_doppler_shift)
  if not np.isfinite(ratio) or ratio > np.iinfo(np.int64).max:
    msg = (
      f"Maximum Doppler shift {max_doppler_shift} Hz is too small for a "
      f"sample rate of {sample_rate} Hz"
    )
    raise NumericalError(msg)
  return max(1, int(ratio))


def design_doppler_filter(
  spectrum: DopplerSpectrum,
  max_doppler_shift: float,
  filter_rate: float,
  num_taps: int,
) -> npt.NDArray[np.complex128]:
  """Design a unit-energy FIR filter shaping white noise to a Doppler PSD.

  Frequency sampling design: the power in each of `num_taps` bins is integrated
  from the spectrum's cumulative distribution, the amplitude response is its
  square root, and the inverse transform is centred and Hamming windowed.

  Args:
    spectrum: Target Doppler spectrum shape.
    max_doppler_shift: Maximum Doppler shift in Hz (> 0).
    filter_rate: Rate at which the filter runs, in Hz.
    num_taps: Filter length.

  Returns:
    Complex filter taps with sum(|h|^2) == 1.

  Raises:
    NumericalError: If the design produces non-finite or zero-energy taps.
  """
  spacing = filter_rate / num_taps
  centers = np.fft.fftfreq(num_taps, d=1.0 / filter_rate)
  power = spectrum.band_power(
    centers - spacing / 2, centers + spacing / 2, max_doppler_shift
  )
  response = np.sqrt(np.maximum(power, 0.0))

  taps = np.fft.fftshift(np.fft.ifft(response))
  taps = taps * scipy_signal.get_window("hamming", num_taps)

  energy = float(np.sum(np.abs(taps) ** 2))
  if not np.isfinite(energy) or energy <= 0.0:
    msg = (
      f"Doppler filter design failed for {spectrum.name} spectrum "
      f"(fd={max_doppler_shift} Hz, rate={filter_rate} Hz, energy={energy})"
    )
    raise NumericalError(msg)

  return (taps / np.sqrt(energy)).astype(np.complex128)


class FadingProcess:
  """Unit-power complex Gaussian process with a prescribed Doppler spectrum.

  With a zero maximum Doppler shift the process is the constant 1 and draws no
  random numbers.

  Attributes:
    spectrum: Doppler spectrum shape.
    max_doppler_shift: Maximum Doppler shift in Hz.
    sample_rate: Output sample rate in Hz.
    interpolation_factor: Output samples per Doppler filter sample.
    filter_rate: Rate of the Doppler filter in Hz.
    samples_elapsed: Number of output samples generated so far.
  """

  def __init__(
    self,
    spectrum: DopplerSpectrum,
    max_doppler_shift: float,
    sample_rate: float,
    seed: np.random.SeedSequence | int | None = None,
    *,
    filter_length: int = 1024,
    oversampling: int = 16,
  ) -> None:
    """Initialize the process and prime its filter.

    Args:
      spectrum: Doppler spectrum shape.
      max_doppler_shift: Maximum Doppler shift in Hz.
      sample_rate: Output sample rate in Hz.
      seed: Seed for the process's private random generator.
      filter_length: Number of Doppler filter taps.
      oversampling: Minimum filter rate in multiples of the max Doppler shift.
    """
    self.spectrum = spectrum
    self.max_doppler_shift = float(max_doppler_shift)
    self.sample_rate = float(sample_rate)
    self.samples_elapsed = 0
    self._rng = np.random.default_rng(seed)
    self._phase = 0

    if self.is_static:
      self.interpolation_factor = 1
      self.filter_rate = self.sample_rate
      self._taps = np.ones(1, dtype=np.complex128)
      self._state = np.zeros(0, dtype=np.complex128)
      self._prev = self._next = complex(1.0)
      return

    self.interpolation_factor = interpolation_factor(
      self.sample_rate, self.max_doppler_shift, oversampling
    )
    self.filter_rate = self.sample_rate / self.interpolation_factor
    self._taps = design_doppler_filter(
      spectrum, self.max_doppler_shift, self.filter_rate, filter_length
    )
    self._state = np.zeros(len(self._taps) - 1, dtype=np.complex128)

    # Run one filter length of noise through so output starts in steady state
    self._shape(len(self._taps))
    self._prev, self._next = self._shape(2)

    logger.debug(
      f"Fading process: {spectrum.name}, fd={self.max_doppler_shift} Hz, "
      f"filter rate={self.filter_rate:.6g} Hz, "
      f"interpolation x{self.interpolation_factor}"
    )

  @property
  def is_static(self) -> bool:
    return self.max_doppler_shift == 0

  @property
  def taps(self) -> npt.NDArray[np.complex128]:
    return self._taps.copy()

  def _shape(self, count: int) -> npt.NDArray[np.complex128]:
    """Draw `count` white samples and pass them through the Doppler filter."""
    if count == 0:
      return np.zeros(0, dtype=np.complex128)
    # One (count, 2) block keeps the draw order independent of chunking
    draws = self._rng.standard_normal((count, 2))
    noise = (draws[:, 0] + 1j * draws[:, 1]) / np.sqrt(2.0)
    shaped, self._state = scipy_signal.lfilter(
      self._taps, 1.0, noise, zi=self._state
    )
    return shaped

  def current(self) -> complex:
    """Gain at the current instant (the next sample to be generated)."""
    weight = self._phase / self.interpolation_factor
    return complex((1.0 - weight) * self._prev + weight * self._next)

  def generate(
    self, count: int
  ) -> tuple[npt.NDArray[np.complex128], npt.NDArray[np.complex128]]:
    """Advance the process by `count` output samples.

    Args:
      count: Number of samples at the output sample rate.

    Returns:
      Tuple of (gains at the output sample rate, Doppler filter samples newly
      produced while advancing).
    """
    if self.is_static:
      self.samples_elapsed += count
      return (
        np.ones(count, dtype=np.complex128),
        np.zeros(0, dtype=np.complex128),
      )

    factor = self.interpolation_factor
    positions = self._phase + np.arange(count)
    advance = (self._phase + count) // factor

    fresh = self._shape(advance)
    anchors = np.concatenate(([self._prev, self._next], fresh))

    index = positions // factor
    weight = (positions % factor) / factor
    gains = (1.0 - weight) * anchors[index] + weight * anchors[index + 1]

    self._prev, self._next = anchors[advance], anchors[advance + 1]
    self._phase = (self._phase + count) % factor
    self.samples_elapsed += count
    return gains, fresh


class DopplerFilterBank:
  """The fading processes of all paths of a channel, advanced in lockstep."""

  def __init__(self, processes: Sequence[FadingProcess]) -> None:
    self.processes = list(processes)

  def __len__(self) -> int:
    return len(self.processes)

  def __iter__(self) -> Iterator[FadingProcess]:
    return iter(self.processes)

  def __getitem__(self, index: int) -> FadingProcess:
    return self.processes[index]

  def current(self) -> npt.NDArray[np.complex128]:
    """Current value of every process, shape (num_paths,)."""
    return np.array([p.current() for p in self.processes], dtype=np.complex128)

  def generate(
    self, count: int
  ) -> tuple[npt.NDArray[np.complex128], list[npt.NDArray[np.complex128]]]:
    """Advance every process by `count` samples.

    Returns:
      Tuple of (unit-power diffuse gains of shape (count, num_paths), list of
      newly produced Doppler filter samples per path).
    """
    diffuse = np.empty((count, len(self.processes)), dtype=np.complex128)
    fresh = []
    for column, process in enumerate(self.processes):
      diffuse[:, column], produced = process.generate(count)
      fresh.append(produced)
    return diffuse, fresh
