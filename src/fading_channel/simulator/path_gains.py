"""Path gain generation: scaling, normalization and line-of-sight components.

Turns the unit-power diffuse processes of the Doppler filter bank into the
complex gains of each discrete path:

  diffuse path:  g(t) = sqrt(P) * s(t)
  Rician path:   g(t) = sqrt(P) * (sqrt(K / (K + 1)) * exp(j(2 pi f_los t + phi))
                                   + sqrt(1 / (K + 1)) * s(t))

where P is the linear average path power, optionally normalized so that the
powers of all paths sum to one.
"""

import numpy as np
import numpy.typing as npt
from pydantic import BaseModel, Field

from fading_channel.config import ChannelConfig
from fading_channel.simulator.doppler import DopplerFilterBank


class RicianComponent(BaseModel):
  """Line-of-sight component of the designated Rician path.

  Attributes:
    path_index: Index of the path carrying the component.
    k_factor: Linear ratio of specular to diffuse power.
    doppler_shift: Doppler shift of the specular component in Hz.
    initial_phase: Phase of the specular component at sample 0, in radians.
  """

  path_index: int = Field(ge=0)
  k_factor: float = Field(ge=0.0)
  doppler_shift: float = 0.0
  initial_phase: float = 0.0

  model_config = {"frozen": True}

  @classmethod
  def from_config(cls, config: ChannelConfig) -> "RicianComponent | None":
    k_factor = config.rician_k_factor
    if k_factor is None:
      return None
    return cls(
      path_index=config.rician_path,
      k_factor=k_factor,
      doppler_shift=config.los_doppler_shift,
      initial_phase=config.los_initial_phase,
    )

  @property
  def specular_weight(self) -> float:
    return float(np.sqrt(self.k_factor / (self.k_factor + 1.0)))

  @property
  def diffuse_weight(self) -> float:
    return float(np.sqrt(1.0 / (self.k_factor + 1.0)))


def path_amplitudes(
  average_gains_db: npt.ArrayLike, *, normalize: bool
) -> npt.NDArray[np.float64]:
  """Linear amplitude scale of each path.

  Args:
    average_gains_db: Average path gains in dB.
    normalize: Rescale so the path powers sum to one.

  Returns:
    Amplitudes sqrt(P) per path.
  """
  power = 10.0 ** (np.asarray(average_gains_db, dtype=np.float64) / 10.0)
  if normalize:
    power = power / power.sum()
  return np.sqrt(power)


class PathGainGenerator:
  """Produces the complex gain of every path, sample by sample.

  Amplitude scaling and normalization are computed once here and applied to
  every block; the generator itself only keeps the sample clock used by the
  line-of-sight component.
  """

  def __init__(
    self,
    bank: DopplerFilterBank,
    average_gains_db: npt.ArrayLike,
    sample_rate: float,
    *,
    normalize: bool = True,
    rician: RicianComponent | None = None,
    start_index: int = 0,
    los_phase: float | None = None,
  ) -> None:
    """Initialize the generator.

    Args:
      bank: Diffuse fading processes, one per path.
      average_gains_db: Average path gains in dB.
      sample_rate: Sample rate in Hz.
      normalize: Rescale so the path powers sum to one.
      rician: Line-of-sight component, if any.
      start_index: Absolute index of the next sample to generate.
      los_phase: Line-of-sight phase at `start_index`. None places the
        component's initial phase at sample 0.
    """
    self.bank = bank
    self.amplitudes = path_amplitudes(average_gains_db, normalize=normalize)
    self.sample_rate = float(sample_rate)
    self.rician = rician
    self.sample_index = start_index

    # Phase of the line-of-sight term at _los_index
    if los_phase is None:
      self._los_index = 0
      self._los_phase = rician.initial_phase if rician is not None else 0.0
    else:
      self._los_index = start_index
      self._los_phase = float(los_phase)

    if len(self.amplitudes) != len(bank):
      msg = (
        f"{len(self.amplitudes)} path gains given for {len(bank)} fading "
        "processes"
      )
      raise ValueError(msg)
    if rician is not None and rician.path_index >= len(bank):
      msg = f"Rician path {rician.path_index} out of range"
      raise ValueError(msg)

  @classmethod
  def from_config(
    cls,
    config: ChannelConfig,
    bank: DopplerFilterBank,
    start_index: int = 0,
    los_phase: float | None = None,
  ) -> "PathGainGenerator":
    return cls(
      bank,
      config.average_path_gains_db,
      config.sample_rate,
      normalize=config.normalize_path_gains,
      rician=RicianComponent.from_config(config),
      start_index=start_index,
      los_phase=los_phase,
    )

  @property
  def average_powers(self) -> npt.NDArray[np.float64]:
    """Expected power of each path after normalization."""
    return self.amplitudes**2

  def specular(self, indices: npt.NDArray[np.int64]) -> npt.NDArray[np.complex128]:
    """Unit-magnitude line-of-sight term at the given sample indices."""
    if self.rician is None:
      return np.zeros(len(indices), dtype=np.complex128)
    return np.exp(1j * self.los_phase(indices))

  def los_phase(self, indices: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Line-of-sight phase in radians at absolute sample indices, wrapped."""
    elapsed = np.asarray(indices, dtype=np.float64) - self._los_index
    shift = self.rician.doppler_shift if self.rician is not None else 0.0
    phase = self._los_phase + 2 * np.pi * shift * elapsed / self.sample_rate
    return np.mod(phase, 2 * np.pi)

  def _combine(
    self, diffuse: npt.NDArray[np.complex128], indices: npt.NDArray[np.int64]
  ) -> npt.NDArray[np.complex128]:
    gains = diffuse * self.amplitudes
    if self.rician is not None:
      p = self.rician.path_index
      gains[:, p] = self.amplitudes[p] * (
        self.rician.specular_weight * self.specular(indices)
        + self.rician.diffuse_weight * diffuse[:, p]
      )
    return gains

  def current(self) -> npt.NDArray[np.complex128]:
    """Gains at the current instant, shape (num_paths,). Draws nothing."""
    diffuse = self.bank.current()[np.newaxis, :]
    return self._combine(diffuse, np.array([self.sample_index]))[0]

  def generate(
    self, count: int
  ) -> tuple[npt.NDArray[np.complex128], list[npt.NDArray[np.complex128]]]:
    """Advance by `count` samples.

    Returns:
      Tuple of (path gains of shape (count, num_paths), newly produced Doppler
      filter samples per path).
    """
    diffuse, fresh = self.bank.generate(count)
    indices = self.sample_index + np.arange(count)
    gains = self._combine(diffuse, indices)
    self.sample_index += count
    return gains, fresh
