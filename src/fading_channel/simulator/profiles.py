"""Standard library of multipath delay profiles.

This module provides factory functions and constants for common fading
channel configurations, organized by origin: the four-path demonstration
channel, ITU-R M.1225 test environments and 3GPP LTE (E-UTRA) profiles. Each
factory returns a ChannelConfig that can be passed straight to Channel.

Typical Usage:
  ```python
  from fading_channel.simulator.profiles import demo, lte
  from fading_channel.simulator.channel import Channel

  # Use factory function with custom parameters
  channel = Channel(lte.eva(max_doppler_shift=5.0), seed=1)

  # Or use pre-configured preset
  channel = Channel(demo.FOUR_PATH_RAYLEIGH.config)
  ```

References:
  - ITU-R Rec. M.1225: "Guidelines for evaluation of radio transmission
    technologies for IMT-2000"
  - 3GPP TS 36.104, Annex B.2: "Multi-path fading propagation conditions"
"""

from collections.abc import Sequence

from pydantic import BaseModel

from fading_channel.config import ChannelConfig


class ChannelPreset(BaseModel):
  """A named channel configuration with metadata.

  Attributes:
    name: Human-readable preset name.
    description: Detailed description of channel characteristics.
    config: Channel configuration.
  """

  name: str
  description: str
  config: ChannelConfig

  model_config = {"frozen": True}


def _profile(
  sample_rate: float,
  delays_ns: Sequence[float],
  gains_db: Sequence[float],
  max_doppler_shift: float,
  **options: object,
) -> ChannelConfig:
  return ChannelConfig(
    sample_rate=sample_rate,
    path_delays=[d * 1e-9 for d in delays_ns],
    average_path_gains_db=list(gains_db),
    max_doppler_shift=max_doppler_shift,
    **options,
  )


# =============================================================================
# Demonstration channel
# =============================================================================


class demo:  # noqa: N801
  """The four-path channel of the classic multipath fading walkthrough.

  Four clusters at 0, 0.2, 0.4 and 0.8 microseconds with gains decaying by
  3 dB per path. At 5 MHz sampling all delays are integer samples (0, 1, 2
  and 4), so the channel filter adds no delay. The 200 Hz maximum Doppler
  shift corresponds to 30 m/s at a 2 GHz carrier.
  """

  SAMPLE_RATE: float = 5e6  # Hz (10 Mb/s QPSK)
  DELAYS_NS: tuple[float, ...] = (0.0, 200.0, 400.0, 800.0)
  GAINS_DB: tuple[float, ...] = (0.0, -3.0, -6.0, -9.0)

  FOUR_PATH_RAYLEIGH: ChannelPreset
  FOUR_PATH_RICIAN: ChannelPreset
  FLAT_RAYLEIGH: ChannelPreset
  FLAT_RICIAN: ChannelPreset

  @staticmethod
  def four_path(
    sample_rate: float = 5e6,
    max_doppler_shift: float = 200.0,
    k_factor: float | None = None,
    los_doppler_shift: float = 100.0,
  ) -> ChannelConfig:
    """Frequency-selective four-path channel.

    Args:
      sample_rate: Sample rate in Hz (default: 5 MHz).
      max_doppler_shift: Maximum Doppler shift in Hz (default: 200 Hz).
      k_factor: K-factor of the first path; None for Rayleigh fading.
      los_doppler_shift: Line-of-sight Doppler shift in Hz, used only when
        `k_factor` is given (default: 100 Hz).

    Returns:
      Channel configuration.
    """
    rician = {}
    if k_factor is not None:
      rician = {"k_factor": k_factor, "los_doppler_shift": los_doppler_shift}
    return _profile(
      sample_rate,
      demo.DELAYS_NS,
      demo.GAINS_DB,
      max_doppler_shift,
      **rician,
    )

  @staticmethod
  def flat(
    sample_rate: float = 5e6,
    max_doppler_shift: float = 200.0,
    k_factor: float | None = None,
    los_doppler_shift: float = 0.0,
  ) -> ChannelConfig:
    """Single-path (frequency-flat) channel with 0 dB gain.

    Args:
      sample_rate: Sample rate in Hz (default: 5 MHz).
      max_doppler_shift: Maximum Doppler shift in Hz (default: 200 Hz).
      k_factor: K-factor of the path; None for Rayleigh fading.
      los_doppler_shift: Line-of-sight Doppler shift in Hz (default: 0 Hz).

    Returns:
      Channel configuration.
    """
    rician = {}
    if k_factor is not None:
      rician = {"k_factor": k_factor, "los_doppler_shift": los_doppler_shift}
    return _profile(sample_rate, [0.0], [0.0], max_doppler_shift, **rician)


demo.FOUR_PATH_RAYLEIGH = ChannelPreset(
  name="Four-path Rayleigh",
  description="Four paths over 0.8 us, 0/-3/-6/-9 dB, fd=200 Hz, 5 MHz",
  config=demo.four_path(),
)

demo.FOUR_PATH_RICIAN = ChannelPreset(
  name="Four-path Rician",
  description="Four-path profile with K=10 on the first path, LOS shift 100 Hz",
  config=demo.four_path(k_factor=10.0),
)

demo.FLAT_RAYLEIGH = ChannelPreset(
  name="Flat Rayleigh",
  description="Single 0 dB path, fd=200 Hz",
  config=demo.flat(),
)

demo.FLAT_RICIAN = ChannelPreset(
  name="Flat Rician",
  description="Single 0 dB path, K=10, LOS shift 0 Hz, fd=200 Hz",
  config=demo.flat(k_factor=10.0),
)


# =============================================================================
# ITU-R M.1225 test environments
# =============================================================================


class itu:  # noqa: N801
  """ITU-R M.1225 channel models for IMT-2000 evaluation.

  Pedestrian environments assume 3 km/h, vehicular 120 km/h; at a 2 GHz
  carrier these give about 6 Hz and 220 Hz maximum Doppler shift.

  References:
    - ITU-R Rec. M.1225, Tables 3 and 4
  """

  TYPICAL_SAMPLE_RATE: float = 3.84e6  # Hz (UMTS chip rate)

  PEDESTRIAN_A: ChannelPreset
  PEDESTRIAN_B: ChannelPreset
  VEHICULAR_A: ChannelPreset
  VEHICULAR_B: ChannelPreset

  @staticmethod
  def pedestrian_a(
    sample_rate: float = 3.84e6, max_doppler_shift: float = 6.0
  ) -> ChannelConfig:
    """Pedestrian A: short delay spread, outdoor-to-indoor.

    Args:
      sample_rate: Sample rate in Hz (default: 3.84 MHz).
      max_doppler_shift: Maximum Doppler shift in Hz (default: 6 Hz).

    Returns:
      Channel configuration.
    """
    return _profile(
      sample_rate,
      [0.0, 110.0, 190.0, 410.0],
      [0.0, -9.7, -19.2, -22.8],
      max_doppler_shift,
    )

  @staticmethod
  def pedestrian_b(
    sample_rate: float = 3.84e6, max_doppler_shift: float = 6.0
  ) -> ChannelConfig:
    """Pedestrian B: medium delay spread, urban pedestrian."""
    return _profile(
      sample_rate,
      [0.0, 200.0, 800.0, 1200.0, 2300.0, 3700.0],
      [0.0, -0.9, -4.9, -8.0, -7.8, -23.9],
      max_doppler_shift,
    )

  @staticmethod
  def vehicular_a(
    sample_rate: float = 3.84e6, max_doppler_shift: float = 220.0
  ) -> ChannelConfig:
    """Vehicular A: suburban vehicular, 120 km/h by default."""
    return _profile(
      sample_rate,
      [0.0, 310.0, 710.0, 1090.0, 1730.0, 2510.0],
      [0.0, -1.0, -9.0, -10.0, -15.0, -20.0],
      max_doppler_shift,
    )

  @staticmethod
  def vehicular_b(
    sample_rate: float = 3.84e6, max_doppler_shift: float = 220.0
  ) -> ChannelConfig:
    """Vehicular B: hilly terrain with a 20 us delay spread."""
    return _profile(
      sample_rate,
      [0.0, 300.0, 8900.0, 12900.0, 17100.0, 20000.0],
      [-2.5, 0.0, -12.8, -10.0, -25.2, -16.0],
      max_doppler_shift,
    )


itu.PEDESTRIAN_A = ChannelPreset(
  name="ITU Pedestrian A",
  description="4 paths, 410 ns spread, fd=6 Hz",
  config=itu.pedestrian_a(),
)

itu.PEDESTRIAN_B = ChannelPreset(
  name="ITU Pedestrian B",
  description="6 paths, 3.7 us spread, fd=6 Hz",
  config=itu.pedestrian_b(),
)

itu.VEHICULAR_A = ChannelPreset(
  name="ITU Vehicular A",
  description="6 paths, 2.5 us spread, fd=220 Hz",
  config=itu.vehicular_a(),
)

itu.VEHICULAR_B = ChannelPreset(
  name="ITU Vehicular B",
  description="6 paths, 20 us spread, fd=220 Hz",
  config=itu.vehicular_b(),
)


# =============================================================================
# 3GPP E-UTRA propagation conditions
# =============================================================================


class lte:  # noqa: N801
  """3GPP TS 36.104 extended models: EPA, EVA and ETU.

  The standard conformance combinations are EPA 5 Hz, EVA 5/70 Hz and
  ETU 70/300 Hz.

  References:
    - 3GPP TS 36.104, Tables B.2-1 to B.2-4
  """

  TYPICAL_SAMPLE_RATE: float = 30.72e6  # Hz (20 MHz LTE)

  EPA5: ChannelPreset
  EVA70: ChannelPreset
  ETU300: ChannelPreset

  @staticmethod
  def epa(
    sample_rate: float = 30.72e6, max_doppler_shift: float = 5.0
  ) -> ChannelConfig:
    """Extended Pedestrian A (410 ns delay spread)."""
    return _profile(
      sample_rate,
      [0.0, 30.0, 70.0, 90.0, 110.0, 190.0, 410.0],
      [0.0, -1.0, -2.0, -3.0, -8.0, -17.2, -20.8],
      max_doppler_shift,
    )

  @staticmethod
  def eva(
    sample_rate: float = 30.72e6, max_doppler_shift: float = 70.0
  ) -> ChannelConfig:
    """Extended Vehicular A (2.51 us delay spread)."""
    return _profile(
      sample_rate,
      [0.0, 30.0, 150.0, 310.0, 370.0, 710.0, 1090.0, 1730.0, 2510.0],
      [0.0, -1.5, -1.4, -3.6, -0.6, -9.1, -7.0, -12.0, -16.9],
      max_doppler_shift,
    )

  @staticmethod
  def etu(
    sample_rate: float = 30.72e6, max_doppler_shift: float = 300.0
  ) -> ChannelConfig:
    """Extended Typical Urban (5 us delay spread)."""
    return _profile(
      sample_rate,
      [0.0, 50.0, 120.0, 200.0, 230.0, 500.0, 1600.0, 2300.0, 5000.0],
      [-1.0, -1.0, -1.0, 0.0, 0.0, 0.0, -3.0, -5.0, -7.0],
      max_doppler_shift,
    )


lte.EPA5 = ChannelPreset(
  name="EPA 5Hz",
  description="Extended Pedestrian A, 7 paths, fd=5 Hz",
  config=lte.epa(),
)

lte.EVA70 = ChannelPreset(
  name="EVA 70Hz",
  description="Extended Vehicular A, 9 paths, fd=70 Hz",
  config=lte.eva(),
)

lte.ETU300 = ChannelPreset(
  name="ETU 300Hz",
  description="Extended Typical Urban, 9 paths, fd=300 Hz",
  config=lte.etu(),
)


PRESETS: dict[str, ChannelPreset] = {
  "demo_four_path": demo.FOUR_PATH_RAYLEIGH,
  "demo_four_path_rician": demo.FOUR_PATH_RICIAN,
  "demo_flat": demo.FLAT_RAYLEIGH,
  "demo_flat_rician": demo.FLAT_RICIAN,
  "itu_ped_a": itu.PEDESTRIAN_A,
  "itu_ped_b": itu.PEDESTRIAN_B,
  "itu_veh_a": itu.VEHICULAR_A,
  "itu_veh_b": itu.VEHICULAR_B,
  "lte_epa5": lte.EPA5,
  "lte_eva70": lte.EVA70,
  "lte_etu300": lte.ETU300,
}


def get_preset(name: str) -> ChannelPreset:
  """Look up a preset by its short key (e.g. "demo_four_path", "lte_eva70").

  Raises:
    KeyError: If the name is unknown.
  """
  if name not in PRESETS:
    msg = f"Unknown preset {name!r}; available: {', '.join(PRESETS)}"
    raise KeyError(msg)
  return PRESETS[name]
