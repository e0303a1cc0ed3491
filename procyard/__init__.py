"""procyard — run, daemonize and supervise a project's processes and tasks."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("procyard")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development
