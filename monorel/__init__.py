"""Release orchestration for independently versioned monorepo components."""

__version__ = "0.4.0"
