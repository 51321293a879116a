"""Configuration module for the fading channel simulator."""

import math
from enum import StrEnum
from typing import Any

import numpy as np
from pydantic import BaseModel, Field, field_validator, model_validator

from fading_channel.spectra import AnySpectrum, JakesSpectrum

# Absolute tolerance (in samples) used to decide that a delay in samples is an integer.
INTEGER_DELAY_TOLERANCE = 1e-6


class DelayPolicy(StrEnum):
  """How path delays that are not integer multiples of the sample period are
  realized by the tap delay line."""

  SINC = "sinc"
  ROUND = "round"


class Visualization(StrEnum):
  """Which channel characteristics `Channel.snapshot` collects."""

  OFF = "off"
  IMPULSE_RESPONSE = "impulse_response"
  FREQUENCY_RESPONSE = "frequency_response"
  IMPULSE_AND_FREQUENCY = "impulse_and_frequency"
  DOPPLER_SPECTRUM = "doppler_spectrum"


class Path(BaseModel):
  """A single discrete multipath component.

  Attributes:
    index: Position of the path in the delay profile.
    delay: Path delay in seconds.
    average_gain_db: Average path power in dB, before normalization.
    is_rician: Whether the path carries the line-of-sight component.
  """

  index: int = Field(ge=0)
  delay: float = Field(ge=0.0)
  average_gain_db: float
  is_rician: bool = False

  model_config = {"frozen": True}


def _as_tuple(value: Any) -> Any:
  """Accept scalars and numpy arrays wherever a vector is expected."""
  if isinstance(value, np.ndarray) or np.isscalar(value):
    return tuple(np.atleast_1d(np.asarray(value, dtype=np.float64)).tolist())
  return value


class ChannelConfig(BaseModel):
  """Configuration of a multipath fading channel.

  The delay profile is given as two parallel vectors, as most channel model
  tables are. A line-of-sight component is enabled by supplying a K-factor;
  it always applies to exactly one path, `rician_path`.

  Attributes:
    sample_rate: Input sample rate in Hz.
    path_delays: Discrete path delays in seconds.
    average_path_gains_db: Average path gains in dB.
    max_doppler_shift: Maximum Doppler shift of the diffuse components in Hz.
    doppler_spectrum: Doppler spectrum shape of the diffuse components.
    k_factor: Linear ratio of specular to diffuse power. Either a scalar for
      `rician_path` or one value per path, non-zero only at `rician_path`.
    los_doppler_shift: Doppler shift of the line-of-sight component in Hz.
    los_initial_phase: Initial phase of the line-of-sight component in radians.
    rician_path: Index of the path carrying the line-of-sight component.
    normalize_path_gains: Scale path gains so the total average power is 0 dB.
    delay_policy: Realization of fractional delays.
    interpolation_half_length: Half length of the sinc interpolation filter.
    doppler_filter_length: Number of taps of the Doppler shaping filter.
    doppler_oversampling: Doppler filter rate in multiples of the max shift.
    spectrum_segment_length: Periodogram segment length of the Doppler
      spectrum estimator, in Doppler filter samples.
    visualization: Characteristics gathered by `Channel.snapshot`.
  """

  sample_rate: float = Field(
    ..., gt=0.0, allow_inf_nan=False, description="Sample rate in Hz."
  )
  path_delays: tuple[float, ...] = Field(
    (0.0,), min_length=1, description="Discrete path delays in seconds."
  )
  average_path_gains_db: tuple[float, ...] = Field(
    (0.0,), min_length=1, description="Average path gains in dB."
  )
  max_doppler_shift: float = Field(0.0, ge=0.0, allow_inf_nan=False)
  doppler_spectrum: AnySpectrum = Field(
    default_factory=JakesSpectrum, discriminator="kind"
  )
  k_factor: float | tuple[float, ...] | None = None
  los_doppler_shift: float = Field(0.0, allow_inf_nan=False)
  los_initial_phase: float = Field(0.0, allow_inf_nan=False)
  rician_path: int = Field(0, ge=0)
  normalize_path_gains: bool = True
  delay_policy: DelayPolicy = DelayPolicy.SINC
  interpolation_half_length: int = Field(8, ge=1, le=64)
  doppler_filter_length: int = Field(1024, ge=16)
  doppler_oversampling: int = Field(16, ge=4)
  spectrum_segment_length: int = Field(1024, ge=16)
  visualization: Visualization = Visualization.OFF

  model_config = {"frozen": True, "extra": "forbid"}

  @field_validator("path_delays", "average_path_gains_db", mode="before")
  @classmethod
  def _coerce_vector(cls, value: Any) -> Any:
    return _as_tuple(value)

  @field_validator("k_factor", mode="before")
  @classmethod
  def _coerce_k_factor(cls, value: Any) -> Any:
    if isinstance(value, np.ndarray):
      return _as_tuple(value)
    return value

  @field_validator("path_delays")
  @classmethod
  def _check_delays(cls, value: tuple[float, ...]) -> tuple[float, ...]:
    for delay in value:
      if not math.isfinite(delay) or delay < 0:
        msg = f"Path delays must be finite and non-negative, got {delay}"
        raise ValueError(msg)
    return value

  @field_validator("average_path_gains_db")
  @classmethod
  def _check_gains(cls, value: tuple[float, ...]) -> tuple[float, ...]:
    if not all(math.isfinite(gain) for gain in value):
      msg = f"Average path gains must be finite, got {value}"
      raise ValueError(msg)
    return value

  @model_validator(mode="after")
  def _check_consistency(self) -> "ChannelConfig":
    if len(self.path_delays) != len(self.average_path_gains_db):
      msg = (
        f"Delay vector has {len(self.path_delays)} entries but gain vector has "
        f"{len(self.average_path_gains_db)}"
      )
      raise ValueError(msg)

    nyquist = self.sample_rate / 2
    if self.max_doppler_shift > nyquist:
      msg = (
        f"Maximum Doppler shift {self.max_doppler_shift} Hz exceeds half the "
        f"sample rate ({nyquist} Hz)"
      )
      raise ValueError(msg)

    self._check_rician(nyquist)
    return self

  def _check_rician(self, nyquist: float) -> None:
    if self.k_factor is None:
      if self.los_doppler_shift != 0 or self.los_initial_phase != 0:
        msg = "Line-of-sight parameters require a K-factor"
        raise ValueError(msg)
      return

    if self.rician_path >= self.num_paths:
      msg = (
        f"Rician path index {self.rician_path} out of range for "
        f"{self.num_paths} path(s)"
      )
      raise ValueError(msg)

    values = (
      self.k_factor if isinstance(self.k_factor, tuple) else (self.k_factor,)
    )
    for k in values:
      if not math.isfinite(k) or k < 0:
        msg = f"K-factor must be finite and non-negative, got {k}"
        raise ValueError(msg)

    if isinstance(self.k_factor, tuple):
      if len(self.k_factor) != self.num_paths:
        msg = (
          f"K-factor vector has {len(self.k_factor)} entries for "
          f"{self.num_paths} path(s)"
        )
        raise ValueError(msg)
      for index, k in enumerate(self.k_factor):
        if k != 0 and index != self.rician_path:
          msg = (
            f"K-factor supplied for path {index}, which is not the designated "
            f"Rician path {self.rician_path}"
          )
          raise ValueError(msg)

    if not math.isfinite(self.los_doppler_shift) or abs(
      self.los_doppler_shift
    ) > nyquist:
      msg = (
        f"Line-of-sight Doppler shift {self.los_doppler_shift} Hz exceeds half "
        f"the sample rate ({nyquist} Hz)"
      )
      raise ValueError(msg)

  @property
  def num_paths(self) -> int:
    return len(self.path_delays)

  @property
  def rician_k_factor(self) -> float | None:
    """K-factor of the designated Rician path, or None for Rayleigh fading."""
    if self.k_factor is None:
      return None
    if isinstance(self.k_factor, tuple):
      return self.k_factor[self.rician_path]
    return self.k_factor

  @property
  def paths(self) -> tuple[Path, ...]:
    rician = self.rician_path if self.k_factor is not None else None
    return tuple(
      Path(index=i, delay=delay, average_gain_db=gain, is_rician=i == rician)
      for i, (delay, gain) in enumerate(
        zip(self.path_delays, self.average_path_gains_db, strict=True)
      )
    )

  @property
  def path_delays_samples(self) -> np.ndarray:
    """Path delays expressed in (possibly fractional) samples."""
    return np.asarray(self.path_delays, dtype=np.float64) * self.sample_rate

  @property
  def has_integer_delays(self) -> bool:
    delays = self.path_delays_samples
    return bool(
      np.allclose(delays, np.round(delays), rtol=0.0, atol=INTEGER_DELAY_TOLERANCE)
    )

  def fading_parameters(self) -> tuple:
    """Parameters that define the diffuse fading processes.

    A change in any of these requires regenerating the processes; changes
    elsewhere (delays, gains, line-of-sight) do not.
    """
    return (
      self.sample_rate,
      self.max_doppler_shift,
      self.doppler_spectrum,
      self.doppler_filter_length,
      self.doppler_oversampling,
    )

  def updated(self, **changes: Any) -> "ChannelConfig":
    """Return a validated copy with some fields replaced.

    Raises:
      pydantic.ValidationError: If the merged configuration is invalid.
    """
    return type(self)(**{**dict(self), **changes})

