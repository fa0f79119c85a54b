import os

from paqtool.api import ListingEntry


def get_files(fpath: os.PathLike) -> list[str]:
    file_list = []
    for root, _, files in os.walk(fpath):
        for file in files:
            file_list.append(os.path.join(root, file))
    return file_list


def make_listing(files: dict[str, bytes]) -> list[ListingEntry]:
    """Create an in-memory listing which keeps the order of the provided dictionary."""
    return [ListingEntry(name, len(data), data) for name, data in files.items()]
