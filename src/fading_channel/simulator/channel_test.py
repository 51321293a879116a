"""Tests for the multipath fading channel."""

import logging
import threading

import numpy as np
import pytest

from fading_channel.config import ChannelConfig, Visualization
from fading_channel.errors import NumericalError, StateError, ValidationError
from fading_channel.simulator.channel import Channel
from fading_channel.spectra import FlatSpectrum, GaussianSpectrum, JakesSpectrum

GAINS_DB = [0.0, -3.0, -6.0, -9.0]


def four_path(**overrides) -> ChannelConfig:
  """Four paths at integer delays 0, 1, 2 and 4 samples of a 10 kHz stream."""
  fields = {
    "sample_rate": 10_000.0,
    "path_delays": [0.0, 1e-4, 2e-4, 4e-4],
    "average_path_gains_db": GAINS_DB,
    "max_doppler_shift": 200.0,
  }
  fields.update(overrides)
  return ChannelConfig(**fields)


def noise(count: int, seed: int = 0) -> np.ndarray:
  rng = np.random.default_rng(seed)
  return (rng.standard_normal(count) + 1j * rng.standard_normal(count)) / np.sqrt(2)


class TestStaticChannel:
  """Tests with zero Doppler shift."""

  @pytest.mark.parametrize(
    "spectrum",
    [JakesSpectrum(), FlatSpectrum(), GaussianSpectrum(normalized_std=0.1)],
    ids=lambda s: s.kind,
  )
  @pytest.mark.parametrize("oversampling", [4, 16, 64])
  def test_identity_channel(self, spectrum, oversampling) -> None:
    """Test that a single static 0 dB path passes samples through unchanged."""
    config = ChannelConfig(
      sample_rate=1e6, doppler_spectrum=spectrum, doppler_oversampling=oversampling
    )
    channel = Channel(config, seed=1)
    samples = noise(1000)
    np.testing.assert_array_equal(channel.process(samples), samples)
    assert channel.channel_filter_delay == 0

  def test_four_path_impulse(self) -> None:
    """Test the impulse response of the static four-path channel."""
    config = ChannelConfig(
      sample_rate=5e6,
      path_delays=[0.0, 2e-7, 4e-7, 8e-7],
      average_path_gains_db=GAINS_DB,
      normalize_path_gains=False,
    )
    channel = Channel(config)
    impulse = np.zeros(8)
    impulse[0] = 1.0
    output = channel.process(impulse)

    expected = np.zeros(8)
    expected[[0, 1, 2, 4]] = 10.0 ** (np.array(GAINS_DB) / 20)
    np.testing.assert_allclose(output, expected, atol=1e-12)

  def test_constant_gains(self) -> None:
    """Test that static paths apply the same gains to every sample."""
    channel = Channel(four_path(max_doppler_shift=0.0), seed=4)
    _, gains = channel.process_with_gains(noise(100))
    np.testing.assert_array_equal(gains, np.tile(gains[0], (100, 1)))
    np.testing.assert_allclose(np.sum(np.abs(gains[0]) ** 2), 1.0)

  def test_fractional_delay_matches_reported_taps(self) -> None:
    """Test that the stream sees exactly the band-limited impulse response."""
    config = ChannelConfig(
      sample_rate=1e6,
      path_delays=[0.0, 1.5e-6],
      average_path_gains_db=[0.0, -6.0],
    )
    channel = Channel(config)
    assert channel.channel_filter_delay == config.interpolation_half_length
    taps = channel.band_limited_impulse_response()
    impulse = np.zeros(len(taps) + 10)
    impulse[0] = 1.0
    output = channel.process(impulse)
    np.testing.assert_allclose(output[: len(taps)], taps, atol=1e-12)
    np.testing.assert_allclose(output[len(taps) :], 0.0, atol=1e-12)


class TestFadingChannel:
  """Statistical and reproducibility tests with Doppler fading."""

  def test_deterministic(self) -> None:
    """Test that equal seeds and inputs give identical output."""
    samples = noise(5000)
    first = Channel(four_path(), seed=42).process(samples)
    second = Channel(four_path(), seed=42).process(samples)
    np.testing.assert_array_equal(first, second)

  def test_seeds_differ(self) -> None:
    """Test that different seeds give different channels."""
    samples = noise(2000)
    first = Channel(four_path(), seed=1).process(samples)
    second = Channel(four_path(), seed=2).process(samples)
    assert not np.allclose(first, second)

  def test_chunking_invariance(self) -> None:
    """Test that the output does not depend on block boundaries."""
    samples = noise(6000)
    expected = Channel(four_path(), seed=5).process(samples)
    channel = Channel(four_path(), seed=5)
    bounds = [0, 1, 17, 1000, 1001, 4096, 6000]
    output = np.concatenate(
      [
        channel.process(samples[start:stop])
        for start, stop in zip(bounds[:-1], bounds[1:], strict=True)
      ]
    )
    np.testing.assert_allclose(output, expected, atol=1e-12)
    assert channel.samples_processed == 6000

  def test_empty_block(self) -> None:
    """Test that an empty block is a no-op."""
    channel = Channel(four_path(), seed=5)
    assert len(channel.process([])) == 0
    assert channel.samples_processed == 0

  def test_power_normalization(self) -> None:
    """Test that normalized channels preserve the average signal power."""
    channel = Channel(four_path(), seed=9)
    samples = noise(200_000, seed=1)
    output = channel.process(samples)
    ratio = np.mean(np.abs(output) ** 2) / np.mean(np.abs(samples) ** 2)
    assert ratio == pytest.approx(1.0, abs=0.1)

  def test_paths_are_independent(self) -> None:
    """Test that path gains are mutually uncorrelated."""
    channel = Channel(four_path(average_path_gains_db=[0, 0, 0, 0]), seed=3)
    _, gains = channel.process_with_gains(np.zeros(200_000))
    correlation = np.corrcoef(gains.T)
    off_diagonal = correlation[~np.eye(4, dtype=bool)]
    assert np.max(np.abs(off_diagonal)) < 0.15

  def test_rician_reduces_fluctuation(self) -> None:
    """Test that a line-of-sight component reduces fading depth."""
    flat = ChannelConfig(sample_rate=100_000.0, max_doppler_shift=200.0)
    rayleigh = Channel(flat, seed=8)
    rician = Channel(flat.updated(k_factor=10.0), seed=8)
    silence = np.zeros(200_000)
    _, rayleigh_gains = rayleigh.process_with_gains(silence)
    _, rician_gains = rician.process_with_gains(silence)

    assert np.std(np.abs(rician_gains)) < 0.6 * np.std(np.abs(rayleigh_gains))
    assert np.ptp(np.abs(rician_gains)) < np.ptp(np.abs(rayleigh_gains))
    assert np.mean(rician_gains) == pytest.approx(np.sqrt(10 / 11), abs=0.05)
    assert np.mean(np.abs(rician_gains) ** 2) == pytest.approx(1.0, abs=0.1)

  def test_zero_k_factor_is_rayleigh(self) -> None:
    """Test that K=0 reproduces the Rayleigh channel bit for bit."""
    samples = noise(3000)
    rayleigh = Channel(four_path(), seed=12).process(samples)
    rician = Channel(
      four_path(k_factor=0.0, los_doppler_shift=50.0), seed=12
    ).process(samples)
    np.testing.assert_array_equal(rician, rayleigh)

  def test_average_path_powers(self) -> None:
    """Test the reported expected path powers."""
    powers = Channel(four_path(normalize_path_gains=False)).average_path_powers
    np.testing.assert_allclose(powers, 10.0 ** (np.array(GAINS_DB) / 10))


class TestInputValidation:
  """Tests for invalid arguments."""

  def test_tiny_doppler_shift(self) -> None:
    """Test that an unrepresentable Doppler shift stays in the error hierarchy."""
    with pytest.raises(NumericalError, match="too small"):
      Channel(ChannelConfig(sample_rate=5e6, max_doppler_shift=1e-320))

  def test_mapping_config(self) -> None:
    """Test that a plain mapping is accepted as configuration."""
    channel = Channel({"sample_rate": 1000.0, "max_doppler_shift": 10.0})
    assert channel.config.max_doppler_shift == 10.0

  def test_invalid_mapping(self) -> None:
    """Test that an invalid mapping raises the channel's validation error."""
    with pytest.raises(ValidationError, match="Invalid channel configuration"):
      Channel({"sample_rate": -1.0})

  @pytest.mark.parametrize(
    "samples",
    [np.zeros((2, 4)), [1.0, np.nan], [np.inf], "abc"],
    ids=["2d", "nan", "inf", "text"],
  )
  def test_invalid_samples(self, samples) -> None:
    """Test that input blocks must be finite 1-D sequences."""
    channel = Channel(four_path(), seed=0)
    with pytest.raises(ValidationError):
      channel.process(samples)
    assert channel.samples_processed == 0

  def test_validation_error_is_value_error(self) -> None:
    """Test that validation errors can be caught as ValueError."""
    with pytest.raises(ValueError):
      Channel(four_path()).process(np.zeros((3, 3)))


class TestReconfigure:
  """Tests for runtime reconfiguration."""

  def test_rejected_change_leaves_channel_intact(self, caplog) -> None:
    """Test that an invalid reconfiguration has no effect at all."""
    reference = Channel(four_path(), seed=6)
    channel = Channel(four_path(), seed=6)
    reference.process(noise(1000))
    channel.process(noise(1000))

    with caplog.at_level(logging.WARNING):
      with pytest.raises(ValidationError):
        channel.reconfigure(path_delays=[0.0, 1e-4])
    assert "Rejected" in caplog.text
    with pytest.raises(ValidationError, match="not the designated"):
      channel.reconfigure(k_factor=[0.0, 3.0, 0.0, 0.0])
    with pytest.raises(ValidationError):
      channel.reconfigure({"max_doppler": 5.0})

    assert channel.config == reference.config
    samples = noise(1000, seed=2)
    np.testing.assert_array_equal(channel.process(samples), reference.process(samples))

  def test_delay_change_keeps_fading(self) -> None:
    """Test that changing delays does not restart the fading processes."""
    reference = Channel(four_path(), seed=6)
    channel = Channel(four_path(), seed=6)
    reference.process(noise(500))
    channel.process(noise(500))

    config = channel.reconfigure(path_delays=[0.0, 2e-4, 3e-4, 5e-4])
    assert config.path_delays == pytest.approx((0.0, 2e-4, 3e-4, 5e-4))
    _, expected = reference.process_with_gains(noise(500))
    _, gains = channel.process_with_gains(noise(500))
    np.testing.assert_array_equal(gains, expected)

  def test_delay_change_continues_stream(self) -> None:
    """Test that the delay line history survives a delay change."""
    channel = Channel(four_path(max_doppler_shift=0.0, normalize_path_gains=False))
    channel.process([1.0, 0.0, 0.0, 0.0])
    channel.reconfigure(path_delays=[0.0, 0.0, 0.0, 5e-4])
    output = channel.process(np.zeros(3))
    # The impulse now reaches the output 5 samples after it entered
    np.testing.assert_allclose(output, [0.0, 10 ** (-9 / 20), 0.0], atol=1e-12)

  def test_doppler_change_regenerates(self) -> None:
    """Test that changing the Doppler shift restarts the fading processes."""
    reference = Channel(four_path(), seed=6)
    channel = Channel(four_path(), seed=6)
    config = channel.reconfigure({"max_doppler_shift": 50.0})
    assert config.max_doppler_shift == 50.0
    assert channel.config is config
    _, expected = reference.process_with_gains(np.zeros(500))
    _, gains = channel.process_with_gains(np.zeros(500))
    assert not np.allclose(gains, expected)

  def test_added_path(self) -> None:
    """Test that a new path gets a fresh process and old paths continue."""
    reference = Channel(four_path(), seed=6)
    channel = Channel(four_path(), seed=6)
    channel.reconfigure(
      path_delays=[0.0, 1e-4, 2e-4, 4e-4, 6e-4],
      average_path_gains_db=[*GAINS_DB, -12.0],
    )
    _, expected = reference.process_with_gains(np.zeros(100))
    _, gains = channel.process_with_gains(np.zeros(100))
    assert gains.shape == (100, 5)
    np.testing.assert_allclose(
      gains[:, :4] / np.sqrt(channel.average_path_powers[:4]),
      expected / np.sqrt(reference.average_path_powers),
    )

  @pytest.mark.parametrize(
    ("changes", "step_after"),
    [
      ({"los_doppler_shift": 11.0}, 2 * np.pi * 11.0 / 1000.0),
      ({"sample_rate": 2000.0}, 2 * np.pi * 10.0 / 2000.0),
    ],
    ids=["los_shift", "sample_rate"],
  )
  def test_los_phase_continuous(self, changes, step_after) -> None:
    """Test that the line-of-sight phase does not jump on reconfiguration."""
    config = ChannelConfig(sample_rate=1000.0, k_factor=1e9, los_doppler_shift=10.0)
    channel = Channel(config, seed=0)
    _, before = channel.process_with_gains(np.zeros(1234))
    channel.reconfigure(changes)
    _, after = channel.process_with_gains(np.zeros(3))

    phase = np.angle(np.concatenate((before[-2:, 0], after[:, 0])))
    steps = np.mod(np.diff(phase), 2 * np.pi)
    step_before = 2 * np.pi * 10.0 / 1000.0
    np.testing.assert_allclose(steps[:2], step_before, atol=1e-3)
    np.testing.assert_allclose(steps[2:], step_after, atol=1e-3)

  def test_explicit_los_phase(self) -> None:
    """Test that a new initial phase or a new component starts from now."""
    config = ChannelConfig(sample_rate=1000.0, k_factor=1e9, los_doppler_shift=10.0)
    channel = Channel(config, seed=0)
    channel.process(np.zeros(777))
    channel.reconfigure(los_initial_phase=0.5)
    assert np.angle(channel.path_gains[0]) == pytest.approx(0.5, abs=1e-3)

    rayleigh = Channel(ChannelConfig(sample_rate=1000.0), seed=0)
    rayleigh.process(np.zeros(333))
    rayleigh.reconfigure(k_factor=1e9, los_doppler_shift=10.0, los_initial_phase=1.0)
    _, gains = rayleigh.process_with_gains(np.zeros(2))
    np.testing.assert_allclose(
      np.angle(gains[:, 0]), [1.0, 1.0 + 2 * np.pi * 0.01], atol=1e-3
    )

  def test_non_blocking_during_reconfiguration(self) -> None:
    """Test that non-blocking processing fails while reconfiguring."""
    channel = Channel(four_path(), seed=6)
    channel._reconfiguring.set()
    with pytest.raises(StateError):
      channel.process(np.zeros(10), block=False)
    channel._reconfiguring.clear()
    assert len(channel.process(np.zeros(10), block=False)) == 10

  def test_blocking_waits_for_reconfiguration(self) -> None:
    """Test that blocking processing waits for the channel lock."""
    channel = Channel(four_path(), seed=6)
    results = []
    with channel._lock:
      worker = threading.Thread(
        target=lambda: results.append(channel.process(np.zeros(10)))
      )
      worker.start()
      worker.join(timeout=0.2)
      assert worker.is_alive()
    worker.join(timeout=5.0)
    assert len(results) == 1

  def test_reset_restarts_from_seed(self) -> None:
    """Test that reset is equivalent to a new channel with the same seed."""
    channel = Channel(four_path(), seed=31)
    channel.process(noise(700))
    channel.reconfigure(max_doppler_shift=80.0)
    channel.process(noise(700))
    channel.reset()
    assert channel.samples_processed == 0

    samples = noise(1000, seed=3)
    expected = Channel(channel.config, seed=31).process(samples)
    np.testing.assert_array_equal(channel.process(samples), expected)


class TestCharacterization:
  """Tests for channel introspection."""

  def test_snapshot_gives_next_gains(self) -> None:
    """Test that the impulse response snapshot holds the next sample's gains."""
    channel = Channel(four_path(), seed=14)
    channel.process(noise(1234))
    snapshot = channel.snapshot_impulse_response()
    assert [delay for delay, _ in snapshot] == pytest.approx([0.0, 1.0, 2.0, 4.0])
    _, gains = channel.process_with_gains(noise(1))
    np.testing.assert_allclose([gain for _, gain in snapshot], gains[0])

  def test_queries_do_not_perturb(self) -> None:
    """Test that characterization leaves the output sequence unchanged."""
    reference = Channel(four_path(spectrum_segment_length=64), seed=15)
    channel = Channel(four_path(spectrum_segment_length=64), seed=15)
    samples = noise(4000)
    for start in range(0, 4000, 500):
      block = samples[start : start + 500]
      channel.snapshot_impulse_response()
      channel.snapshot_frequency_response(64)
      assert channel.path_gains.shape == (4,)
      np.testing.assert_array_equal(channel.process(block), reference.process(block))
      channel.doppler_spectrum_estimate(2)

  def test_concurrent_reader(self) -> None:
    """Test that a reader thread does not change the processed stream."""
    reference = Channel(four_path(), seed=16)
    channel = Channel(four_path(), seed=16)
    stop = threading.Event()
    snapshots = []

    def read() -> None:
      while not stop.is_set():
        snapshots.append(channel.snapshot_impulse_response())
        channel.snapshot_frequency_response(128)

    reader = threading.Thread(target=read)
    reader.start()
    try:
      samples = noise(20_000)
      outputs = [channel.process(block) for block in np.split(samples, 40)]
    finally:
      stop.set()
      reader.join()

    np.testing.assert_array_equal(
      np.concatenate(outputs), reference.process(samples)
    )
    assert snapshots
    assert all(len(snapshot) == 4 for snapshot in snapshots)

  def test_frequency_response(self) -> None:
    """Test the transfer function of the static four-path channel."""
    channel = Channel(four_path(max_doppler_shift=0.0))
    taps = channel.band_limited_impulse_response()
    response = channel.snapshot_frequency_response(64)
    np.testing.assert_allclose(response, np.fft.fftshift(np.fft.fft(taps, 64)))
    assert response[32] == pytest.approx(np.sum(taps))
    assert channel.frequency_grid(64)[32] == 0.0
    with pytest.raises(ValidationError):
      channel.snapshot_frequency_response(4)

  def test_doppler_spectrum_estimate(self) -> None:
    """Test readiness and shape of the per-path Doppler spectrum estimate."""
    channel = Channel(four_path(spectrum_segment_length=64), seed=17)
    with pytest.raises(StateError):
      channel.doppler_spectrum_estimate(0)
    channel.process(noise(2000))
    estimate = channel.doppler_spectrum_estimate(1)
    assert estimate.path_index == 1
    assert estimate.num_segments >= 1
    assert len(estimate.frequencies) == 64
    with pytest.raises(ValidationError):
      channel.doppler_spectrum_estimate(4)

  def test_static_path_has_no_doppler_spectrum(self) -> None:
    """Test that a path without fading has no Doppler spectrum."""
    channel = Channel(four_path(max_doppler_shift=0.0))
    channel.process(np.zeros(10_000))
    with pytest.raises(StateError, match="static"):
      channel.doppler_spectrum_estimate(0)

  @pytest.mark.parametrize(
    ("mode", "impulse", "frequency"),
    [
      (Visualization.OFF, False, False),
      (Visualization.IMPULSE_RESPONSE, True, False),
      (Visualization.FREQUENCY_RESPONSE, False, True),
      (Visualization.IMPULSE_AND_FREQUENCY, True, True),
    ],
  )
  def test_snapshot_modes(self, mode, impulse, frequency) -> None:
    """Test that snapshots hold what the visualization mode selects."""
    channel = Channel(four_path(visualization=mode), seed=18)
    channel.process(noise(100))
    snapshot = channel.snapshot()
    assert snapshot.mode == mode
    assert snapshot.sample_index == 100
    assert (snapshot.impulse_response is not None) == impulse
    assert (snapshot.band_limited_response is not None) == impulse
    assert (snapshot.frequency_response is not None) == frequency
    if frequency:
      assert len(snapshot.frequency_response) == len(snapshot.frequencies) == 512
    assert snapshot.doppler_spectrum is None

  def test_doppler_snapshot(self) -> None:
    """Test the Doppler spectrum visualization mode."""
    channel = Channel(
      four_path(
        visualization=Visualization.DOPPLER_SPECTRUM, spectrum_segment_length=64
      ),
      seed=19,
    )
    assert channel.snapshot().doppler_spectrum is None
    channel.process(noise(2000))
    snapshot = channel.snapshot(path_index=3)
    assert snapshot.doppler_spectrum.path_index == 3
    with pytest.raises(ValidationError):
      channel.snapshot(path_index=9)

  def test_visualization_change_keeps_fading(self) -> None:
    """Test that switching visualization does not disturb the channel."""
    reference = Channel(four_path(), seed=20)
    channel = Channel(four_path(), seed=20)
    channel.reconfigure(visualization=Visualization.IMPULSE_RESPONSE)
    samples = noise(300)
    np.testing.assert_array_equal(channel.process(samples), reference.process(samples))


class TestNumericalFault:
  """Tests for the fatal numerical fault state."""

  def test_fault_is_fatal(self, monkeypatch) -> None:
    """Test that a non-finite output makes the channel unusable."""
    channel = Channel(ChannelConfig(sample_rate=1000.0), seed=0)

    def broken(count: int):
      return np.full((count, 1), np.nan, dtype=np.complex128), [np.zeros(0)]

    monkeypatch.setattr(channel._gains, "generate", broken)
    with pytest.raises(NumericalError):
      channel.process(np.ones(4))
    assert channel.samples_processed == 0

    with pytest.raises(NumericalError, match="unusable"):
      channel.process(np.ones(4))
    with pytest.raises(NumericalError):
      channel.reconfigure(max_doppler_shift=1.0)
    channel.reset()
    with pytest.raises(NumericalError):
      channel.process(np.ones(4))

  def test_failed_reconfiguration_is_fatal(self) -> None:
    """Test that a Doppler filter failure during reconfiguration faults the channel."""
    channel = Channel(four_path(), seed=0)
    config = channel.config
    with pytest.raises(NumericalError, match="too small"):
      channel.reconfigure(max_doppler_shift=1e-320)
    assert channel.config == config
    with pytest.raises(NumericalError, match="unusable"):
      channel.process(np.ones(4))
