"""Actor building blocks: worker factories with job routing, jobs, statistics, process groups and registries."""

__version__ = "0.1.0"

__all__ = [
    "errors",
    "message",
    "hashing",
    "stats",
    "job",
    "routing",
    "worker",
    "registry",
    "factory",
    "pg",
]