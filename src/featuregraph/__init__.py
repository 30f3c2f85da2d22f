"""featuregraph - relationship graph engine for file-backed feature tracking.

Features live as YAML records next to a repository; each one carries typed,
directed relationships to other features. This package defines the
relationship schema, keeps edges and their inverses consistent, answers
bounded graph queries, and validates and repairs the stored graph.
"""

__version__ = "0.1.0"


# Lazy imports keep `featuregraph --help` fast
def __getattr__(name: str):
    if name == "models":
        from featuregraph import models
        return models
    if name == "graph":
        from featuregraph import graph
        return graph
    if name == "validation":
        from featuregraph import validation
        return validation
    if name == "management":
        from featuregraph import management
        return management
    if name == "storage":
        from featuregraph import storage
        return storage
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
