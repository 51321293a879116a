"""Multipath fading channel: configuration, state and the public interface.

A Channel owns one fading process per path, the path gain generator, the tap
delay line and the Doppler spectrum estimators, and serializes access to them.

Typical Usage:
  ```python
  from fading_channel.config import ChannelConfig
  from fading_channel.simulator.channel import Channel

  config = ChannelConfig(
    sample_rate=5e6,
    path_delays=[0, 2e-7, 4e-7, 8e-7],
    average_path_gains_db=[0, -3, -6, -9],
    max_doppler_shift=200,
  )
  channel = Channel(config, seed=73)
  received = channel.process(transmitted)
  taps = channel.snapshot_impulse_response()
  ```
"""

import logging
import threading
from collections.abc import Mapping
from typing import Any

import numpy as np
import numpy.typing as npt
import pydantic

from fading_channel.config import ChannelConfig, Visualization
from fading_channel.errors import NumericalError, StateError, ValidationError
from fading_channel.simulator import characterization
from fading_channel.simulator.characterization import (
  DopplerSpectrumEstimate,
  DopplerSpectrumEstimator,
  VisualizationSnapshot,
)
from fading_channel.simulator.delay_line import TapDelayLine
from fading_channel.simulator.doppler import DopplerFilterBank, FadingProcess
from fading_channel.simulator.path_gains import PathGainGenerator

logger = logging.getLogger(__name__)

# Minimum number of points of the frequency response collected by `snapshot`
SNAPSHOT_FREQUENCY_POINTS = 512


def _validated(config: ChannelConfig | Mapping[str, Any]) -> ChannelConfig:
  if isinstance(config, ChannelConfig):
    return config
  try:
    return ChannelConfig(**config)
  except pydantic.ValidationError as err:
    msg = f"Invalid channel configuration: {err}"
    raise ValidationError(msg) from err


def _as_signal(samples: npt.ArrayLike) -> npt.NDArray[np.complex128]:
  try:
    signal = np.asarray(samples, dtype=np.complex128)
  except (TypeError, ValueError) as err:
    msg = f"Samples must be numeric: {err}"
    raise ValidationError(msg) from err
  if signal.ndim != 1:
    msg = f"Samples must be a 1-D sequence, got shape {signal.shape}"
    raise ValidationError(msg)
  if not np.all(np.isfinite(signal)):
    msg = "Samples contain non-finite values"
    raise ValidationError(msg)
  return signal


class Channel:
  """Multipath Rayleigh/Rician fading channel for complex baseband streams.

  Processing is sequential: each call continues the stream of the previous
  one. All methods are thread-safe; processing, reconfiguration and
  characterization queries are serialized by one lock, so queries always see
  the state between two processing calls.

  Seeding: every fading process ever created by the channel gets its own child
  of `numpy.random.SeedSequence(seed)`, numbered in creation order. Equal
  seeds and equal call histories therefore give identical output.
  """

  def __init__(
    self, config: ChannelConfig | Mapping[str, Any], seed: int | None = None
  ) -> None:
    """Initialize the channel.

    Args:
      config: Channel configuration, or a mapping of its fields.
      seed: Seed for all fading processes; None draws fresh OS entropy.

    Raises:
      ValidationError: If the configuration is invalid.
      NumericalError: If the Doppler filter design fails.
    """
    self._seed = seed
    self._entropy = np.random.SeedSequence(seed).entropy
    self._lock = threading.Lock()
    self._reconfiguring = threading.Event()
    self._fault: str | None = None

    self._config = _validated(config)
    self._spawned = 0
    self._samples_processed = 0
    self._rebuild(self._config, keep_processes=False)

    logger.info(
      f"Channel created: {self._config.num_paths} path(s), "
      f"fs={self._config.sample_rate:g} Hz, "
      f"fd={self._config.max_doppler_shift:g} Hz, "
      f"{'Rician' if self._config.rician_k_factor is not None else 'Rayleigh'}"
    )

  # ---------------------------------------------------------------------------
  # State assembly
  # ---------------------------------------------------------------------------

  def _child_seed(self, number: int) -> np.random.SeedSequence:
    return np.random.SeedSequence(self._entropy, spawn_key=(number,))

  def _rebuild(
    self,
    config: ChannelConfig,
    *,
    keep_processes: bool,
    restart_los_phase: bool = False,
  ) -> list[int]:
    """Build all per-configuration state for `config`, then swap it in.

    Nothing on `self` changes unless every component was built successfully.
    With `keep_processes`, the line-of-sight phase continues from its current
    value unless `restart_los_phase` is set or the component is new; it then
    starts at `config.los_initial_phase` from the current sample.

    Returns:
      Indices of the paths whose fading processes were (re)generated.
    """
    reuse = keep_processes and (
      config.fading_parameters() == self._config.fading_parameters()
    )
    old_processes = list(self._bank) if keep_processes else []
    old_estimators = self._estimators if keep_processes else []

    spawned = self._spawned
    processes: list[FadingProcess] = []
    estimators: list[DopplerSpectrumEstimator | None] = []
    regenerated = []
    for index in range(config.num_paths):
      if reuse and index < len(old_processes):
        process = old_processes[index]
        estimator = old_estimators[index]
        if (
          estimator is not None
          and estimator.segment_length != config.spectrum_segment_length
        ):
          estimator = self._new_estimator(config, process)
      else:
        process = FadingProcess(
          config.doppler_spectrum,
          config.max_doppler_shift,
          config.sample_rate,
          self._child_seed(spawned),
          filter_length=config.doppler_filter_length,
          oversampling=config.doppler_oversampling,
        )
        spawned += 1
        regenerated.append(index)
        estimator = self._new_estimator(config, process)
      processes.append(process)
      estimators.append(estimator)

    los_phase = None
    if keep_processes and config.rician_k_factor is not None:
      if restart_los_phase or self._gains.rician is None:
        los_phase = config.los_initial_phase
      else:
        los_phase = float(self._gains.los_phase(self._samples_processed))

    bank = DopplerFilterBank(processes)
    gains = PathGainGenerator.from_config(
      config, bank, start_index=self._samples_processed, los_phase=los_phase
    )

    if keep_processes and self._delay_line.same_geometry(config):
      delay_line = self._delay_line
    else:
      delay_line = TapDelayLine.from_config(config)
      if keep_processes:
        delay_line.carry_history_from(self._delay_line)

    self._config = config
    self._spawned = spawned
    self._bank = bank
    self._estimators = estimators
    self._gains = gains
    self._delay_line = delay_line
    return regenerated

  @staticmethod
  def _new_estimator(
    config: ChannelConfig, process: FadingProcess
  ) -> DopplerSpectrumEstimator | None:
    if process.is_static:
      return None
    return DopplerSpectrumEstimator(
      process.spectrum,
      process.max_doppler_shift,
      process.filter_rate,
      config.spectrum_segment_length,
    )

  def _mark_faulted(self, reason: str) -> None:
    self._fault = reason
    logger.error(f"Numerical fault: {reason}")

  def _check_fault(self) -> None:
    if self._fault is not None:
      msg = f"Channel is unusable after a numerical fault: {self._fault}"
      raise NumericalError(msg)

  # ---------------------------------------------------------------------------
  # Properties
  # ---------------------------------------------------------------------------

  @property
  def config(self) -> ChannelConfig:
    return self._config

  @property
  def seed(self) -> int | None:
    return self._seed

  @property
  def samples_processed(self) -> int:
    return self._samples_processed

  @property
  def channel_filter_delay(self) -> int:
    """Delay in samples added by fractional-delay interpolation."""
    return self._delay_line.filter_delay

  @property
  def path_gains(self) -> npt.NDArray[np.complex128]:
    """Complex gain of every path at the current instant."""
    with self._lock:
      return self._gains.current()

  @property
  def average_path_powers(self) -> npt.NDArray[np.float64]:
    """Expected linear power of every path, after normalization."""
    with self._lock:
      return self._gains.average_powers

  # ---------------------------------------------------------------------------
  # Processing and control
  # ---------------------------------------------------------------------------

  def process(
    self, samples: npt.ArrayLike, *, block: bool = True
  ) -> npt.NDArray[np.complex128]:
    """Pass a block of samples through the channel.

    Args:
      samples: Complex baseband input block, continuing the previous one.
      block: Wait for an in-flight reconfiguration instead of failing.

    Returns:
      Faded output block of the same length.

    Raises:
      ValidationError: If the samples are not a finite 1-D sequence.
      StateError: If `block` is False and a reconfiguration is in flight.
      NumericalError: If the output is not finite; the channel is then
        unusable.
    """
    output, _ = self.process_with_gains(samples, block=block)
    return output

  def process_with_gains(
    self, samples: npt.ArrayLike, *, block: bool = True
  ) -> tuple[npt.NDArray[np.complex128], npt.NDArray[np.complex128]]:
    """Like `process`, also returning the path gains applied to each sample.

    Returns:
      Tuple of (output block, path gains of shape (len(samples), num_paths)).
    """
    signal = _as_signal(samples)
    if not block and self._reconfiguring.is_set():
      msg = "Channel is being reconfigured"
      raise StateError(msg)

    with self._lock:
      self._check_fault()
      gains, fresh = self._gains.generate(len(signal))
      output = self._delay_line.process(signal, gains)

      if not np.all(np.isfinite(output)):
        self._mark_faulted(
          f"non-finite output after sample {self._samples_processed}"
        )
        raise NumericalError(self._fault)

      for estimator, produced in zip(self._estimators, fresh, strict=True):
        if estimator is not None:
          estimator.observe(produced)
      self._samples_processed += len(signal)

    logger.debug(
      f"Processed {len(signal)} samples ({self._samples_processed} total)"
    )
    return output, gains

  def reconfigure(
    self, changes: Mapping[str, Any] | None = None, /, **kwargs: Any
  ) -> ChannelConfig:
    """Atomically apply a partial configuration.

    Only the fading processes whose defining parameters changed are
    regenerated: delay, gain and line-of-sight changes keep the running
    processes, and paths added at the end get fresh ones. The delay line
    history is carried over, so the stream continues seamlessly.

    Args:
      changes: Mapping of ChannelConfig fields to new values.
      **kwargs: More fields, merged over `changes`.

    Returns:
      The configuration now in effect.

    Raises:
      ValidationError: If the merged configuration is invalid. The channel
        is left exactly as it was.
      NumericalError: If the new Doppler filters cannot be built; the
        channel is then unusable.
    """
    updates = {**(changes or {}), **kwargs}
    self._reconfiguring.set()
    try:
      with self._lock:
        self._check_fault()
        try:
          config = self._config.updated(**updates)
        except pydantic.ValidationError as err:
          logger.warning(f"Rejected reconfiguration {sorted(updates)}")
          msg = f"Invalid channel configuration: {err}"
          raise ValidationError(msg) from err

        try:
          regenerated = self._rebuild(
            config,
            keep_processes=True,
            restart_los_phase="los_initial_phase" in updates,
          )
        except NumericalError as err:
          self._mark_faulted(f"reconfiguration failed: {err}")
          raise
    finally:
      self._reconfiguring.clear()

    logger.info(
      f"Reconfigured {sorted(updates)}; regenerated fading processes for "
      f"paths {regenerated}"
    )
    return config

  def reset(self) -> None:
    """Restart the channel from its seed with the current configuration.

    Equivalent to constructing a new channel with the same seed and config.
    A numerical fault is not cleared.
    """
    with self._lock:
      self._spawned = 0
      self._samples_processed = 0
      try:
        self._rebuild(self._config, keep_processes=False)
      except NumericalError as err:
        self._mark_faulted(f"reset failed: {err}")
        raise
    logger.info("Channel reset")

  # ---------------------------------------------------------------------------
  # Characterization
  # ---------------------------------------------------------------------------

  def snapshot_impulse_response(self) -> list[tuple[float, complex]]:
    """Delay (in output samples) and current complex gain of every path."""
    with self._lock:
      return characterization.impulse_response_snapshot(
        self._delay_line.output_delays, self._gains.current()
      )

  def band_limited_impulse_response(self) -> npt.NDArray[np.complex128]:
    """Effective channel taps at the current instant, as applied to the stream."""
    with self._lock:
      return characterization.band_limited_impulse_response(
        self._delay_line.coefficients, self._gains.current()
      )

  def snapshot_frequency_response(self, num_points: int) -> npt.NDArray[np.complex128]:
    """Channel transfer function at the current instant, DC centred.

    Raises:
      ValidationError: If `num_points` is smaller than the channel filter.
    """
    with self._lock:
      taps = characterization.band_limited_impulse_response(
        self._delay_line.coefficients, self._gains.current()
      )
    return characterization.frequency_response(taps, num_points)

  def frequency_grid(self, num_points: int) -> npt.NDArray[np.float64]:
    """Frequencies in Hz of `snapshot_frequency_response(num_points)`."""
    return characterization.frequency_grid(num_points, self._config.sample_rate)

  def doppler_spectrum_estimate(self, path_index: int = 0) -> DopplerSpectrumEstimate:
    """Measured and theoretical Doppler spectrum of one path.

    Raises:
      ValidationError: If the path index is out of range.
      StateError: If the path does not fade, or too few samples were processed.
    """
    with self._lock:
      if not 0 <= path_index < len(self._estimators):
        msg = (
          f"Path index {path_index} out of range for "
          f"{len(self._estimators)} path(s)"
        )
        raise ValidationError(msg)
      estimator = self._estimators[path_index]
      if estimator is None:
        msg = f"Path {path_index} is static (zero Doppler shift)"
        raise StateError(msg)
      return estimator.estimate(path_index)

  def snapshot(self, path_index: int = 0) -> VisualizationSnapshot:
    """Collect the characteristics selected by `config.visualization`.

    Args:
      path_index: Path whose Doppler spectrum is reported.

    Raises:
      ValidationError: If the path index is out of range.
    """
    fields: dict[str, Any] = {}
    with self._lock:
      if not 0 <= path_index < len(self._estimators):
        msg = f"Path index {path_index} out of range"
        raise ValidationError(msg)
      mode = self._config.visualization
      sample_rate = self._config.sample_rate
      sample_index = self._samples_processed
      gains = self._gains.current()
      coefficients = self._delay_line.coefficients
      delays = self._delay_line.output_delays
      estimator = self._estimators[path_index]
      if (
        mode == Visualization.DOPPLER_SPECTRUM
        and estimator is not None
        and estimator.num_segments
      ):
        fields["doppler_spectrum"] = estimator.estimate(path_index)

    if mode in (Visualization.IMPULSE_RESPONSE, Visualization.IMPULSE_AND_FREQUENCY):
      fields["impulse_response"] = characterization.impulse_response_snapshot(
        delays, gains
      )
      fields["band_limited_response"] = (
        characterization.band_limited_impulse_response(coefficients, gains)
      )
    if mode in (
      Visualization.FREQUENCY_RESPONSE,
      Visualization.IMPULSE_AND_FREQUENCY,
    ):
      num_points = max(SNAPSHOT_FREQUENCY_POINTS, coefficients.shape[1])
      taps = characterization.band_limited_impulse_response(coefficients, gains)
      fields["frequencies"] = characterization.frequency_grid(num_points, sample_rate)
      fields["frequency_response"] = characterization.frequency_response(
        taps, num_points
      )

    return VisualizationSnapshot(mode=mode, sample_index=sample_index, **fields)
