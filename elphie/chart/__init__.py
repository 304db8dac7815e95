"""Chart surface contract, binding and legend formatting."""
