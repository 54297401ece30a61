"""Heat Planner: price-aware scheduling for a two-zone electric water heater."""

try:
    from importlib.metadata import version as _pkg_version
    __version__ = _pkg_version("heat-planner")
except Exception:
    __version__ = "dev"
