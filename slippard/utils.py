import logging
import os
import pathlib
import tempfile

import click

log = logging.getLogger(__name__)


class SlippardException(click.ClickException):
    pass


class KeyFormatError(SlippardException):
    """The private key could not be read or is not a usable RSA key."""


class CryptoError(SlippardException):
    """An RSA operation failed."""


class AuthenticationError(SlippardException):
    """Authenticated decryption failed: the store was modified or the key is wrong."""


class FormatError(SlippardException):
    """The store file or its plaintext is not in the expected layout."""


class NotFound(SlippardException):
    pass


class RecordError(SlippardException):
    pass


class StoreNotFound(SlippardException):
    pass


def ensure_file(path: pathlib.Path) -> bool:
    """Create an empty file and its parent directories, returning True if it was created."""
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch(mode=0o600)
    log.info(f"Created empty store file {path}")
    return True


def write_atomic(path: pathlib.Path, data: bytes) -> None:
    """
    Replace the contents of a file without ever leaving it partially written.

    The data goes to a temporary file in the same directory, which is then
    renamed over the original. The original is untouched if anything fails.
    """
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f'.{path.name}.', suffix='.tmp')
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        log.debug(f"Removing temporary file {tmp}")
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise
    log.debug(f"Wrote {len(data)} bytes to {path}")
