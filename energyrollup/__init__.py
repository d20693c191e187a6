from . import (
    canon,
    exceptions,
    types,
    config,
    utils,
    periods,
    counters,
    delta,
    store,
    merge,
    directory,
    scheduler,
    backfill,
)

__all__ = [
    "canon",
    "exceptions",
    "types",
    "config",
    "utils",
    "periods",
    "counters",
    "delta",
    "store",
    "merge",
    "directory",
    "scheduler",
    "backfill",
]
