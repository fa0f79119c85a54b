from importlib.metadata import PackageNotFoundError, version

from .api import PAQFile, extract, repack  # noqa

try:
    __version__ = version("paqtool")
except PackageNotFoundError:
    __version__ = None
