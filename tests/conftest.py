import pathlib
import typing

import attr
import click.testing
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, rsa

import slippard.cli
from slippard.store import Store


@attr.s(frozen=True)
class ExampleKey:
    name: str = attr.ib()
    format: serialization.PrivateFormat = attr.ib()

    def __str__(self):
        return self.name

    def write(self, key, path: pathlib.Path, password: typing.Optional[bytes] = None):
        encryption = (serialization.BestAvailableEncryption(password)
                      if password else serialization.NoEncryption())
        path.write_bytes(key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=self.format,
            encryption_algorithm=encryption))
        return path


PKCS1 = ExampleKey('pkcs1', serialization.PrivateFormat.TraditionalOpenSSL)
OPENSSH = ExampleKey('openssh', serialization.PrivateFormat.OpenSSH)
PKCS8 = ExampleKey('pkcs8', serialization.PrivateFormat.PKCS8)


@pytest.fixture(scope='session')
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope='session')
def other_rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=1024)


@pytest.fixture(params=[PKCS1, OPENSSH], ids=str)
def key_format(request) -> ExampleKey:
    return request.param


@pytest.fixture()
def key_path(tmp_path, rsa_private_key, key_format) -> pathlib.Path:
    return key_format.write(rsa_private_key, tmp_path / f'id_rsa_{key_format}')


@pytest.fixture()
def other_key_path(tmp_path, other_rsa_private_key) -> pathlib.Path:
    return PKCS1.write(other_rsa_private_key, tmp_path / 'id_rsa_other')


@pytest.fixture()
def ed25519_key_path(tmp_path) -> pathlib.Path:
    return OPENSSH.write(ed25519.Ed25519PrivateKey.generate(), tmp_path / 'id_ed25519')


@pytest.fixture()
def store_path(tmp_path) -> pathlib.Path:
    path = tmp_path / 'store.dat'
    path.touch()
    return path


@pytest.fixture()
def store(store_path, key_path) -> typing.Iterator[Store]:
    with Store.open(store_path, key_path) as s:
        yield s


@pytest.fixture()
def reopen(store_path, key_path):
    def reopen_func() -> Store:
        return Store.open(store_path, key_path)

    return reopen_func


@pytest.fixture()
def run(tmp_path, key_path):
    def run_func(arguments: typing.Sequence[str]) -> click.testing.Result:
        assert all(isinstance(arg, str) for arg in arguments)
        runner = click.testing.CliRunner()
        return runner.invoke(slippard.cli.main, arguments, env={
            'SLP_KEY_PATH': str(key_path),
            'SLP_STORE_FILE': str(tmp_path / 'config' / 'slippard' / 'store.dat'),
            'SLP_KEY_PASSPHRASE': None,
        })

    return run_func


@pytest.fixture()
def invoke(run):
    def invoke_func(arguments: typing.Sequence[str]) -> typing.List[str]:
        result = run(arguments)
        if result.exit_code != 0:
            message = f"Command slpd {' '.join(arguments)} failed: {result.output}"
            raise Exception(message) from result.exception
        return result.output.splitlines()

    return invoke_func
