"""Exception hierarchy for the fading channel simulator."""


class FadingChannelError(Exception):
  """Base class for all errors raised by the simulator."""


class ValidationError(FadingChannelError, ValueError):
  """Malformed or inconsistent configuration or input.

  Raised before any channel state is touched, so the caller may retry with
  corrected input.
  """


class StateError(FadingChannelError, RuntimeError):
  """Operation not valid in the channel's current state.

  Examples: processing requested (non-blocking) while a reconfiguration is in
  flight, or a Doppler spectrum estimate requested before enough samples have
  been observed.
  """


class NumericalError(FadingChannelError, ArithmeticError):
  """Non-finite result from a filter or transform computation.

  Fatal to the channel instance that raised it.
  """
