"""synthops — guarded decommissioning of synths across protocol contracts."""

__version__ = "1.0.0"
