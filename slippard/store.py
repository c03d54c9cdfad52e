import logging
import pathlib
import typing

import attr

from .envelope import (
    KEY_SIZE,
    build_envelope,
    generate_symmetric_key,
    is_uninitialized,
    open_sealed,
    parse_envelope,
    seal,
)
from .keys import RSAKey, load_private_key
from .utils import (
    CryptoError,
    FormatError,
    NotFound,
    RecordError,
    SlippardException,
    StoreNotFound,
    ensure_file,
    write_atomic,
)

log = logging.getLogger(__name__)

TAG_SEPARATOR = '\x1b'

Tag = typing.Optional[str]


def normalize_tag(tag: Tag) -> Tag:
    """The empty tag and no tag are the same scope."""
    return tag or None


@attr.s(frozen=True, kw_only=True)
class Record:
    key: str = attr.ib()
    value: str = attr.ib()
    tag: Tag = attr.ib(default=None, converter=normalize_tag)

    def __attrs_post_init__(self):
        if not self.key:
            raise RecordError("Keys cannot be empty")
        if '=' in self.key:
            raise RecordError(f"Key {self.key!r} cannot contain '='")
        for name, text in (('Key', self.key), ('Value', self.value), ('Tag', self.tag or '')):
            if '\n' in text:
                raise RecordError(f"{name} for {self.key!r} cannot contain a newline")
            if TAG_SEPARATOR in text:
                raise RecordError(f"{name} for {self.key!r} cannot contain the ESC character")
            try:
                text.encode('utf-8')
            except UnicodeEncodeError as error:
                raise RecordError(f"{name} for {self.key!r} is not valid UTF-8 text") from error

    def __str__(self):
        if self.tag is None:
            return f"{self.key}={self.value}"
        return f"{self.key}={self.value}{TAG_SEPARATOR}{self.tag}"

    @classmethod
    def parse(cls, line: str) -> 'Record':
        key, sep, rest = line.partition('=')
        if not sep:
            raise FormatError("Store contains a line without '='")
        value, _, tag = rest.partition(TAG_SEPARATOR)
        try:
            return cls(key=key, value=value, tag=tag)
        except RecordError as error:
            raise FormatError(f"Store contains an invalid record: {error.message}") from error

    def in_scope(self, tag: Tag) -> bool:
        return self.tag == normalize_tag(tag)

    def matches(self, key: str, tag: Tag) -> bool:
        return self.key == key and self.in_scope(tag)


def serialize_records(records: typing.Iterable[Record]) -> bytes:
    return ''.join(f"{record}\n" for record in records).encode('utf-8')


def parse_records(plaintext: bytes) -> typing.List[Record]:
    try:
        text = plaintext.decode('utf-8')
    except UnicodeDecodeError as error:
        raise FormatError("Store contents are not valid UTF-8") from error
    return [Record.parse(line) for line in text.split('\n') if line]


@attr.s
class Store:
    """
    An encrypted key-value store held in a single file.

    The whole file is decrypted into memory when the store is opened, and
    rewritten in full after each change.
    """

    path: pathlib.Path = attr.ib(converter=pathlib.Path)
    key: RSAKey = attr.ib(repr=False)
    records: typing.List[Record] = attr.ib(factory=list, repr=False)
    symmetric_key: bytearray = attr.ib(factory=generate_symmetric_key, repr=False)

    # The symmetric key encrypted with the RSA key, computed on first write.
    key_blob: typing.Optional[bytes] = attr.ib(default=None, repr=False)

    closed: bool = attr.ib(default=False, init=False)

    @classmethod
    def open(
            cls,
            path: pathlib.Path,
            key_path: pathlib.Path,
            password: typing.Optional[bytes] = None) -> 'Store':
        path = pathlib.Path(path)
        key = load_private_key(key_path, password)

        try:
            data = path.read_bytes()
        except FileNotFoundError as error:
            raise StoreNotFound(f"No store file at {path}") from error
        except OSError as error:
            raise SlippardException(f"Could not read {path}: {error.strerror}") from error

        if is_uninitialized(data):
            log.info(f"Store {path} is empty, generating a new store key")
            return cls(path=path, key=key)

        key_blob, sealed = parse_envelope(data)
        symmetric_key = bytearray(key.decrypt(key_blob))
        if len(symmetric_key) != KEY_SIZE:
            raise CryptoError(
                f"Decrypted store key is {len(symmetric_key)} bytes, expected {KEY_SIZE}")

        records = parse_records(open_sealed(sealed, symmetric_key))
        log.info(f"Opened store {path} with {len(records)} records")
        return cls(
            path=path,
            key=key,
            records=records,
            symmetric_key=symmetric_key,
            key_blob=key_blob)

    @classmethod
    def create(
            cls,
            path: pathlib.Path,
            key_path: pathlib.Path,
            password: typing.Optional[bytes] = None) -> 'Store':
        """Open a store, creating an empty store file first if there is none."""
        ensure_file(pathlib.Path(path))
        return cls.open(path, key_path, password)

    def __enter__(self) -> 'Store':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __iter__(self) -> typing.Iterator[Record]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def close(self) -> None:
        """Zero the symmetric key and forget the encrypted copy of it."""
        for i in range(len(self.symmetric_key)):
            self.symmetric_key[i] = 0
        self.key_blob = None
        self.closed = True

    def scope(self, tag: Tag = None, every_tag: bool = False) -> typing.Iterator[Record]:
        return (r for r in self.records if every_tag or r.in_scope(tag))

    def list(
            self,
            substring: typing.Optional[str] = None,
            tag: Tag = None,
            every_tag: bool = False) -> typing.List[str]:
        """
        List keys in a tag scope, optionally only those containing a substring.

        With no tag only untagged records are listed, and every_tag lists
        records from all scopes.
        """
        return [r.key for r in self.scope(tag, every_tag) if not substring or substring in r.key]

    def get(self, key: str, tag: Tag = None) -> str:
        for record in self.records:
            if record.matches(key, tag):
                return record.value

        scope = f" with tag {tag!r}" if normalize_tag(tag) else ""
        raise NotFound(f"Key {key!r}{scope} not found")

    def set(self, key: str, value: str, tag: Tag = None) -> None:
        """Replace the value of (key, tag) in place, or append a new record."""
        new = Record(key=key, value=value, tag=tag)
        records = list(self.records)

        for i, record in enumerate(records):
            if record.matches(key, tag):
                log.debug(f"Replacing record {i} ({key!r})")
                records[i] = new
                break
        else:
            log.debug(f"Appending record {key!r}")
            records.append(new)

        self.commit(records)

    def delete(self, key: str) -> bool:
        """
        Remove the first record with a key, whatever its tag.

        Deleting a missing key does nothing and leaves the file untouched.
        """
        for i, record in enumerate(self.records):
            if record.key == key:
                log.debug(f"Deleting record {i} ({key!r})")
                self.commit(self.records[:i] + self.records[i + 1:])
                return True

        log.info(f"No record with key {key!r} to delete")
        return False

    def dump(self, tag: Tag = None, every_tag: bool = False) -> str:
        return '\n'.join(f"{r.key}={r.value}" for r in self.scope(tag, every_tag))

    def commit(self, records: typing.List[Record]) -> None:
        """Write records to the store file, keeping them only if the write succeeds."""
        if self.closed:
            raise SlippardException(f"Store {self.path} is closed")

        if self.key_blob is None:
            log.debug(f"Encrypting store key for {self.key.fingerprint}")
            self.key_blob = self.key.encrypt(self.symmetric_key)

        sealed = seal(serialize_records(records), self.symmetric_key)
        write_atomic(self.path, build_envelope(self.key_blob, sealed))
        self.records = records
        log.info(f"Wrote {len(records)} records to {self.path}")
