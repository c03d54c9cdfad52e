import pathlib
import typing

from .store import Store


def open_store(
        path: pathlib.Path,
        key_path: pathlib.Path,
        password: typing.Optional[bytes] = None) -> Store:
    return Store.create(path, key_path, password)
