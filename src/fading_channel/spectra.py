"""Doppler power spectral density shapes for diffuse fading components.

Every shape is defined on the normalized frequency axis x = f / fd, where fd is
the maximum Doppler shift, and has unit total power. Shapes are described by
their cumulative power distribution, which lets the filter designer integrate
power over frequency bins exactly instead of sampling singular densities such
as the Jakes U-shape at its band edges.

References:
  - W.C. Jakes, "Microwave Mobile Communications", 1974
  - COST 207, "Digital land mobile radio communications", 1989
"""

from abc import ABC, abstractmethod
from typing import Literal

import numpy as np
import numpy.typing as npt
from pydantic import BaseModel, Field
from scipy import special


class DopplerSpectrum(ABC):
  """Abstract base class for Doppler spectrum shapes."""

  @abstractmethod
  def cumulative(self, x: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Fraction of the total power located below normalized frequency x.

    Args:
      x: Normalized frequency f / fd.

    Returns:
      Values in [0, 1], non-decreasing in x.
    """

  @abstractmethod
  def normalized_density(self, x: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Power density on the normalized frequency axis (integrates to 1)."""

  @property
  @abstractmethod
  def name(self) -> str:
    """Human-readable name for this spectrum."""

  def band_power(
    self, f_low: npt.ArrayLike, f_high: npt.ArrayLike, max_doppler_shift: float
  ) -> npt.NDArray[np.float64]:
    """Power contained in the frequency band [f_low, f_high] (Hz)."""
    f_low = np.asarray(f_low, dtype=np.float64)
    f_high = np.asarray(f_high, dtype=np.float64)
    return self.cumulative(f_high / max_doppler_shift) - self.cumulative(
      f_low / max_doppler_shift
    )

  def density(
    self, freqs: npt.ArrayLike, max_doppler_shift: float
  ) -> npt.NDArray[np.float64]:
    """Power spectral density in 1/Hz at the given frequencies."""
    x = np.asarray(freqs, dtype=np.float64) / max_doppler_shift
    return self.normalized_density(x) / max_doppler_shift


class JakesSpectrum(BaseModel, DopplerSpectrum):
  """Classical U-shaped spectrum of isotropic 2-D scattering.

  S(x) = 1 / (pi * sqrt(1 - x^2)) for |x| < 1.
  """

  kind: Literal["jakes"] = "jakes"

  model_config = {"frozen": True}

  def cumulative(self, x: npt.ArrayLike) -> npt.NDArray[np.float64]:
    x = np.clip(np.asarray(x, dtype=np.float64), -1.0, 1.0)
    return 0.5 + np.arcsin(x) / np.pi

  def normalized_density(self, x: npt.ArrayLike) -> npt.NDArray[np.float64]:
    x = np.asarray(x, dtype=np.float64)
    inside = np.abs(x) < 1.0
    safe = np.where(inside, x, 0.0)
    return np.where(inside, 1.0 / (np.pi * np.sqrt(1.0 - safe**2)), 0.0)

  @property
  def name(self) -> str:
    return "Jakes"


class FlatSpectrum(BaseModel, DopplerSpectrum):
  """Uniform spectrum over [-fd, fd] (3-D isotropic scattering)."""

  kind: Literal["flat"] = "flat"

  model_config = {"frozen": True}

  def cumulative(self, x: npt.ArrayLike) -> npt.NDArray[np.float64]:
    x = np.clip(np.asarray(x, dtype=np.float64), -1.0, 1.0)
    return (x + 1.0) / 2.0

  def normalized_density(self, x: npt.ArrayLike) -> npt.NDArray[np.float64]:
    x = np.asarray(x, dtype=np.float64)
    return np.where(np.abs(x) <= 1.0, 0.5, 0.0)

  @property
  def name(self) -> str:
    return "Flat"


class RoundedSpectrum(BaseModel, DopplerSpectrum):
  """Polynomial approximation of the Jakes shape without edge singularities.

  S(x) ~ a0 + a2 * x^2 + a4 * x^4 for |x| <= 1 (IEEE 802.16 style channels).
  """

  kind: Literal["rounded"] = "rounded"
  coefficients: tuple[float, float, float] = (1.0, -1.72, 0.785)

  model_config = {"frozen": True}

  def _antiderivative(self, x: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    a0, a2, a4 = self.coefficients
    return a0 * x + a2 * x**3 / 3.0 + a4 * x**5 / 5.0

  def cumulative(self, x: npt.ArrayLike) -> npt.NDArray[np.float64]:
    x = np.clip(np.asarray(x, dtype=np.float64), -1.0, 1.0)
    half = self._antiderivative(np.float64(1.0))
    return (self._antiderivative(x) + half) / (2.0 * half)

  def normalized_density(self, x: npt.ArrayLike) -> npt.NDArray[np.float64]:
    x = np.asarray(x, dtype=np.float64)
    a0, a2, a4 = self.coefficients
    total = 2.0 * self._antiderivative(np.float64(1.0))
    shape = (a0 + a2 * x**2 + a4 * x**4) / total
    return np.where(np.abs(x) <= 1.0, shape, 0.0)

  @property
  def name(self) -> str:
    return "Rounded"


class GaussianSpectrum(BaseModel, DopplerSpectrum):
  """Gaussian spectrum, typical of aeronautical and HF channels.

  Attributes:
    normalized_std: Standard deviation in units of the maximum Doppler shift.
  """

  kind: Literal["gaussian"] = "gaussian"
  normalized_std: float = Field(default=2.0**-0.5, gt=0.0)

  model_config = {"frozen": True}

  def cumulative(self, x: npt.ArrayLike) -> npt.NDArray[np.float64]:
    x = np.asarray(x, dtype=np.float64)
    return special.ndtr(x / self.normalized_std)

  def normalized_density(self, x: npt.ArrayLike) -> npt.NDArray[np.float64]:
    x = np.asarray(x, dtype=np.float64)
    sigma = self.normalized_std
    return np.exp(-(x**2) / (2.0 * sigma**2)) / (np.sqrt(2.0 * np.pi) * sigma)

  @property
  def name(self) -> str:
    return f"Gaussian(sigma={self.normalized_std:.3g})"


class BellSpectrum(BaseModel, DopplerSpectrum):
  """Bell-shaped spectrum used for fixed wireless links.

  S(x) ~ 1 / (1 + C * x^2).
  """

  kind: Literal["bell"] = "bell"
  coefficient: float = Field(default=9.0, gt=0.0)

  model_config = {"frozen": True}

  def cumulative(self, x: npt.ArrayLike) -> npt.NDArray[np.float64]:
    x = np.asarray(x, dtype=np.float64)
    return 0.5 + np.arctan(np.sqrt(self.coefficient) * x) / np.pi

  def normalized_density(self, x: npt.ArrayLike) -> npt.NDArray[np.float64]:
    x = np.asarray(x, dtype=np.float64)
    c = self.coefficient
    return np.sqrt(c) / (np.pi * (1.0 + c * x**2))

  @property
  def name(self) -> str:
    return f"Bell(C={self.coefficient:g})"


AnySpectrum = (
  JakesSpectrum | FlatSpectrum | RoundedSpectrum | GaussianSpectrum | BellSpectrum
)
