"""Simulator module for multipath fading channels."""

from fading_channel.simulator import profiles
from fading_channel.simulator.channel import Channel
from fading_channel.simulator.characterization import (
  DopplerSpectrumEstimate,
  DopplerSpectrumEstimator,
  VisualizationSnapshot,
)
from fading_channel.simulator.delay_line import TapDelayLine, channel_filter
from fading_channel.simulator.doppler import (
  DopplerFilterBank,
  FadingProcess,
  design_doppler_filter,
)
from fading_channel.simulator.path_gains import PathGainGenerator, RicianComponent
from fading_channel.simulator.profiles import ChannelPreset, demo, itu, lte

__all__ = [
  # Channel and its components
  "Channel",
  "DopplerFilterBank",
  "DopplerSpectrumEstimate",
  "DopplerSpectrumEstimator",
  "FadingProcess",
  "PathGainGenerator",
  "RicianComponent",
  "TapDelayLine",
  "VisualizationSnapshot",
  "channel_filter",
  "design_doppler_filter",
  # Delay profile presets
  "ChannelPreset",
  "demo",
  "itu",
  "lte",
  "profiles",
]
