#!/usr/bin/env python3
"""Multipath Fading Channel Demonstration Script.

This script pushes a QPSK symbol stream through a fading channel preset:
QPSK Source -> Multipath Fading Channel -> Received Samples

While the stream is processed it reports the channel as it evolves: the
impulse response, the spread of the frequency response, and how close the
measured Doppler spectrum of the first path is to its target shape.
"""

import logging
import sys
from pathlib import Path
from typing import Annotated

import numpy as np
import typer

from fading_channel.config import ChannelConfig, Visualization
from fading_channel.errors import FadingChannelError
from fading_channel.setup_logging import setup_logging
from fading_channel.simulator.channel import Channel
from fading_channel.simulator.profiles import PRESETS, ChannelPreset, get_preset

setup_logging(level="INFO")
logger = logging.getLogger(__name__)


def qpsk_symbols(count: int, rng: np.random.Generator) -> np.ndarray:
  """Unit-power QPSK symbols, one sample per symbol."""
  bits = rng.integers(0, 2, size=(count, 2))
  return ((2 * bits[:, 0] - 1) + 1j * (2 * bits[:, 1] - 1)) / np.sqrt(2)


def get_channel_preset(preset_name: str) -> ChannelPreset:
  """Get channel preset by name."""
  try:
    return get_preset(preset_name)
  except KeyError:
    logger.error(f"Unknown preset: {preset_name}")
    logger.error(f"Available presets: {', '.join(PRESETS)}")
    sys.exit(1)


def build_config(
  preset: ChannelPreset,
  max_doppler_shift: float | None,
  k_factor: float | None,
) -> ChannelConfig:
  """Apply command line overrides to a preset configuration."""
  changes: dict[str, object] = {"visualization": Visualization.IMPULSE_AND_FREQUENCY}
  if max_doppler_shift is not None:
    changes["max_doppler_shift"] = max_doppler_shift
  if k_factor is not None:
    changes["k_factor"] = k_factor
  return preset.config.updated(**changes)


def log_snapshot(channel: Channel) -> None:
  """Log the current impulse response and frequency response spread."""
  snapshot = channel.snapshot()
  logger.info(f"Channel after {snapshot.sample_index} samples:")
  for delay, gain in snapshot.impulse_response or []:
    logger.info(
      f"  delay {delay:7.2f} samples  |g| = {abs(gain):.3f}  "
      f"phase = {np.degrees(np.angle(gain)):7.1f} deg"
    )
  if snapshot.frequency_response is not None:
    magnitude_db = 20 * np.log10(np.abs(snapshot.frequency_response) + 1e-12)
    logger.info(
      f"  frequency response spread: {magnitude_db.max() - magnitude_db.min():.1f} dB"
    )


def log_doppler_spectrum(channel: Channel) -> None:
  """Compare the measured Doppler spectrum of path 0 with its target."""
  try:
    estimate = channel.doppler_spectrum_estimate(0)
  except FadingChannelError as err:
    logger.info(f"No Doppler spectrum estimate: {err}")
    return
  empirical = estimate.empirical * estimate.resolution
  theoretical = estimate.theoretical * estimate.resolution
  logger.info(
    f"Doppler spectrum of path 0 over {estimate.num_segments} segments: "
    f"total power {empirical.sum():.3f}, "
    f"deviation from target {np.abs(empirical - theoretical).sum():.3f}"
  )


def compare_with_rician(config: ChannelConfig, seed: int | None, samples: int) -> None:
  """Log how a K=10 line of sight changes the envelope of path 0."""
  rician_config = config.updated(k_factor=10.0, los_doppler_shift=0.0)
  rayleigh_config = config.updated(
    k_factor=None, los_doppler_shift=0.0, los_initial_phase=0.0
  )
  silence = np.zeros(samples)
  _, rayleigh = Channel(rayleigh_config, seed=seed).process_with_gains(silence)
  _, rician = Channel(rician_config, seed=seed).process_with_gains(silence)
  for label, gains in (("Rayleigh", rayleigh), ("Rician K=10", rician)):
    envelope = np.abs(gains[:, 0]) / np.sqrt(np.mean(np.abs(gains[:, 0]) ** 2))
    logger.info(
      f"  {label:12s} envelope std {np.std(envelope):.3f}, "
      f"deepest fade {20 * np.log10(envelope.min() + 1e-12):.1f} dB"
    )


def main(
  output: Annotated[
    Path | None,
    typer.Option(
      "--output",
      "-o",
      help="Save input, output and path gains to this .npz file.",
    ),
  ] = None,
  preset: Annotated[
    str,
    typer.Option(
      "--preset",
      "-p",
      help="Channel preset (e.g., demo_four_path, lte_eva70).",
    ),
  ] = "demo_four_path",
  samples: Annotated[
    int,
    typer.Option("--samples", "-n", help="Number of samples to simulate.", min=1),
  ] = 1_000_000,
  block_size: Annotated[
    int,
    typer.Option("--block-size", "-b", help="Samples per processing call.", min=1),
  ] = 10_000,
  seed: Annotated[
    int | None,
    typer.Option("--seed", "-s", help="Seed for the source and the channel."),
  ] = None,
  max_doppler_shift: Annotated[
    float | None,
    typer.Option("--doppler", "-d", help="Override the maximum Doppler shift (Hz)."),
  ] = None,
  k_factor: Annotated[
    float | None,
    typer.Option("--k-factor", "-k", help="Add a line-of-sight path with this K."),
  ] = None,
  report_every: Annotated[
    int,
    typer.Option("--report-every", help="Log the channel every N blocks.", min=1),
  ] = 25,
) -> None:
  """Simulate a symbol stream over a multipath fading channel."""
  # 1. Setup Channel
  channel_preset = get_channel_preset(preset)
  logger.info(f"Using channel preset: {channel_preset.name}")
  logger.info(f"  {channel_preset.description}")

  try:
    config = build_config(channel_preset, max_doppler_shift, k_factor)
    channel = Channel(config, seed=seed)
  except (FadingChannelError, ValueError):
    logger.exception("Invalid channel configuration")
    sys.exit(1)

  if channel.channel_filter_delay:
    logger.info(
      f"Fractional delays: output lags by {channel.channel_filter_delay} samples"
    )

  # 2. Run Simulation
  rng = np.random.default_rng(seed)
  transmitted = qpsk_symbols(samples, rng)
  received = np.empty_like(transmitted)
  gains = np.empty((samples, config.num_paths), dtype=np.complex128)

  logger.info(f"Processing {samples} samples in blocks of {block_size}...")
  for number, start in enumerate(range(0, samples, block_size)):
    stop = min(start + block_size, samples)
    received[start:stop], gains[start:stop] = channel.process_with_gains(
      transmitted[start:stop]
    )
    if number % report_every == 0:
      log_snapshot(channel)

  # 3. Report
  log_snapshot(channel)
  log_doppler_spectrum(channel)
  envelope_db = 20 * np.log10(np.abs(gains[:, 0]) + 1e-12)
  logger.info(
    f"Path 0 envelope: mean power {np.mean(np.abs(gains[:, 0]) ** 2):.3f}, "
    f"deepest fade {envelope_db.min():.1f} dB"
  )
  logger.info(
    f"Output power: {np.mean(np.abs(received) ** 2):.3f} "
    f"(input {np.mean(np.abs(transmitted) ** 2):.3f})"
  )

  logger.info("Comparing Rayleigh and Rician fading on path 0:")
  compare_with_rician(config, seed, min(samples, 200_000))

  # 4. Output
  if output is not None:
    np.savez(output, transmitted=transmitted, received=received, gains=gains)
    logger.info(f"Saved output to {output}")
  logger.info("Simulation complete!")


if __name__ == "__main__":
  typer.run(main)
