import functools
import logging
import os.path
import pathlib
import typing

import attr
import click

from . import __doc__, __version__
from .api import open_store
from .store import Store

log = logging.getLogger(__name__)

DEFAULT_KEY_PATH = os.path.join('~', '.ssh', 'id_rsa')
DEFAULT_STORE_FILE = os.path.join('~', '.config', 'slippard', 'store.dat')


@attr.s(frozen=True)
class Settings:
    store_path: pathlib.Path = attr.ib()
    key_path: pathlib.Path = attr.ib()
    passphrase: typing.Optional[str] = attr.ib(default=None, repr=False)

    @property
    def password(self) -> typing.Optional[bytes]:
        return self.passphrase.encode('utf-8') if self.passphrase else None


class PathType(click.Path):
    def convert(self, value, param, ctx):
        return pathlib.Path(super().convert(value, param, ctx)).expanduser()


class StoreGroup(click.Group):
    """A group where a bare KEY=VALUE argument runs the set command."""

    def resolve_command(self, ctx, args):
        if args and '=' in args[0] and args[0] not in self.commands:
            return 'set', self.commands['set'], args
        return super().resolve_command(ctx, args)


def pass_store(f):
    """Open (creating if needed) the store for a command and close it afterwards."""
    @functools.wraps(f)
    def wrapper(ctx: click.Context, *args, **kwargs):
        settings: Settings = ctx.obj
        store = ctx.with_resource(open_store(
            settings.store_path,
            settings.key_path,
            settings.password))
        return f(store, *args, **kwargs)

    return click.pass_context(wrapper)


tag_option = click.option(
    '-t', '--tag',
    metavar='TAG',
    default=None,
    type=click.STRING,
    help="Only use keys with this tag.")

every_tag_option = click.option(
    '-a', '--all-tags', 'every_tag',
    default=False,
    is_flag=True,
    help="Include keys with any tag, or none.")


@click.group(cls=StoreGroup, help=__doc__)
@click.option(
    '-s', '--store', 'store_path',
    type=PathType(dir_okay=False),
    envvar='SLP_STORE_FILE',
    default=DEFAULT_STORE_FILE,
    show_default=True,
    help="The encrypted store file.")
@click.option(
    '-k', '--key-path',
    type=PathType(dir_okay=False),
    envvar='SLP_KEY_PATH',
    default=DEFAULT_KEY_PATH,
    show_default=True,
    help="The RSA private key protecting the store.")
@click.option(
    '--passphrase',
    envvar='SLP_KEY_PASSPHRASE',
    default=None,
    type=click.STRING,
    help="Passphrase for an encrypted private key.")
@click.option(
    '-d', '--debug', 'debug',
    default=False,
    is_flag=True,
    help="Enable debug logging.")
@click.pass_context
def main(
        ctx,
        store_path: pathlib.Path,
        key_path: pathlib.Path,
        passphrase: typing.Optional[str],
        debug: bool):
    logging.basicConfig(level=(logging.DEBUG if debug else logging.WARNING))
    ctx.obj = Settings(store_path=store_path, key_path=key_path, passphrase=passphrase)


@main.command()
def version():
    """Show the application version."""
    click.echo(f"slippard {__version__}")


@main.command(name='set')
@tag_option
@click.argument('key')
@click.argument('value', required=False, default=None)
@pass_store
def set_(store: Store, key: str, value: typing.Optional[str], tag: typing.Optional[str]):
    """
    Set the value of a key.

    The value can be given as a second argument or as KEY=VALUE.
    """
    if value is None:
        key, sep, value = key.partition('=')
        if not sep:
            raise click.UsageError("Invalid format. Use KEY=VALUE or KEY VALUE")

    store.set(key, value, tag)


@main.command()
@tag_option
@click.argument('key')
@pass_store
def get(store: Store, key: str, tag: typing.Optional[str]):
    """Print the value of a key."""
    click.echo(store.get(key, tag))


@main.command(name='del')
@click.argument('key')
@pass_store
def delete(store: Store, key: str):
    """
    Delete a key.

    The first record with the key is removed whatever its tag. Deleting a
    key that does not exist is not an error.
    """
    store.delete(key)


@main.command(name='list')
@tag_option
@every_tag_option
@click.argument('substring', metavar='[FILTER]', required=False, default=None)
@pass_store
def list_(
        store: Store,
        substring: typing.Optional[str],
        tag: typing.Optional[str],
        every_tag: bool):
    """List keys, optionally only those containing FILTER."""
    for key in store.list(substring, tag=tag, every_tag=every_tag):
        click.echo(key)


@main.command()
@tag_option
@every_tag_option
@pass_store
def dump(store: Store, tag: typing.Optional[str], every_tag: bool):
    """Print keys and values as KEY=VALUE lines."""
    text = store.dump(tag=tag, every_tag=every_tag)
    if text:
        click.echo(text)
