"""Pure domain value objects for the fulfillment kernel.  ZERO I/O."""
