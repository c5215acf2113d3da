"""typedstore test suite; modules import shared fakes as `tests.*`."""
