"""CLI commands implemented with click.

    localbak PATH...              back up each path (same as `localbak backup`)
    localbak -z PATH...           back up as compressed archives
    localbak restore ARTIFACT     restore from a .bak / .bak.d / .tar.zstd
    localbak restore -d ARTIFACT  restore, then delete the backup
    localbak list PATH            show existing backups of a path
"""
import sys

import click

from localbak import __version__, configure_logging
from localbak.config import get_config
from localbak.models import BackupMode
from localbak.backup import (
    BackupEngine, BackupError, CleanupPolicy, EventLog, RestoreEngine, find_artifacts
)

MODE_CHOICES = {
    'plain': BackupMode.PLAIN_COPY,
    'mirror': BackupMode.DIRECTORY_MIRROR,
    'archive': BackupMode.COMPRESSED_ARCHIVE,
}

ALIASES = {
    'b': 'backup',
    'bak': 'backup',
    'r': 'restore',
    'res': 'restore',
    'ls': 'list',
}


class DefaultGroup(click.Group):
    """Group that resolves aliases and falls back to `backup` for bare paths."""

    default_command = 'backup'

    def get_command(self, ctx, cmd_name):
        return super().get_command(ctx, ALIASES.get(cmd_name, cmd_name))

    def resolve_command(self, ctx, args):
        # Report the canonical name, not the alias that was typed
        cmd_name, cmd, rest = super().resolve_command(ctx, args)
        return cmd.name if cmd else cmd_name, cmd, rest

    def _group_option_names(self, ctx):
        names = set(ctx.help_option_names)
        for param in self.params:
            names.update(getattr(param, 'opts', ()))
            names.update(getattr(param, 'secondary_opts', ()))
        return names

    def _short_flags(self, ctx):
        return {name[1] for name in self._group_option_names(ctx)
                if len(name) == 2 and name[0] == '-'}

    def _is_group_option(self, ctx, arg):
        if arg in self._group_option_names(ctx):
            return True
        # Bundled short flags such as -yv
        return arg.startswith('-') and not arg.startswith('--') and len(arg) > 1 \
            and set(arg[1:]) <= self._short_flags(ctx)

    def _split_bundles(self, ctx, args):
        """Split -yz into -y -z so the group keeps -y and backup gets -z."""
        short_flags = self._short_flags(ctx)
        result = []

        for index, arg in enumerate(args):
            if self._is_group_option(ctx, arg):
                result.append(arg)
                continue

            if arg.startswith('-') and not arg.startswith('--'):
                lead = ''
                for char in arg[1:]:
                    if char not in short_flags:
                        break
                    lead += char
                if lead:
                    result.extend('-' + char for char in lead)
                    arg = '-' + arg[1 + len(lead):]

            result.append(arg)
            result.extend(args[index + 1:])
            break

        return result

    def parse_args(self, ctx, args):
        args = self._split_bundles(ctx, list(args))
        for index, arg in enumerate(args):
            if self._is_group_option(ctx, arg):
                continue
            if arg not in self.commands and arg not in ALIASES:
                args.insert(index, self.default_command)
            break
        return super().parse_args(ctx, args)


class Session:
    """Per-invocation settings shared by all commands."""

    def __init__(self, config, assume_yes, verbose):
        self.config = config
        self.assume_yes = assume_yes or config.ASSUME_YES
        self.events = EventLog(listener=self._echo if verbose else None)

    @staticmethod
    def _echo(event):
        click.echo(event.describe(), err=True)

    def confirm(self, prompt):
        if self.assume_yes:
            return True
        return click.confirm(prompt, default=False)


@click.group(cls=DefaultGroup)
@click.version_option(version=__version__, prog_name='localbak')
@click.option('-y', '--yes', 'assume_yes', is_flag=True, help='Do not confirm.')
@click.option('-v', '--verbose', is_flag=True, help='Print out every action.')
@click.pass_context
def cli(ctx, assume_yes, verbose):
    """Simple local backups with a bit of compression."""
    config = get_config('verbose' if verbose else None)
    configure_logging(config)
    ctx.obj = Session(config, assume_yes, verbose)


@cli.command()
@click.argument('paths', nargs=-1, required=True, type=click.Path())
@click.option('-z', '--compress', is_flag=True, help='Use zstd compression.')
@click.option('-m', '--mode', type=click.Choice(sorted(MODE_CHOICES)), default=None,
              help='Force a backup mode instead of inferring it.')
@click.option('-f', '--force', is_flag=True, help='Replace an existing backup.')
@click.pass_obj
def backup(session, paths, compress, mode, force):
    """Create backup of files or directories (default action)."""
    engine = BackupEngine(
        overwrite=force,
        compression_level=session.config.COMPRESSION_LEVEL,
        events=session.events
    )
    failed = 0

    for path in paths:
        try:
            artifact = engine.create(path, mode=MODE_CHOICES.get(mode), compress=compress)
            click.echo(str(artifact.path))
        except (BackupError, OSError) as e:
            click.echo(f'Error backing up {path}: {e}', err=True)
            failed += 1

    if failed:
        sys.exit(1)


@cli.command()
@click.argument('path', type=click.Path())
@click.option('-d', '--delete', is_flag=True, help='Delete backup after successful restore.')
@click.option('-o', '--to', 'destination', type=click.Path(), default=None,
              help='Restore to this path instead of the original location.')
@click.option('-f', '--force', is_flag=True, help='Replace an existing destination.')
@click.pass_obj
def restore(session, path, delete, destination, force):
    """Restore from backup."""
    engine = RestoreEngine(overwrite=force, events=session.events)

    try:
        restored = engine.restore(path, destination=destination)
    except (BackupError, OSError) as e:
        click.echo(f'Error: {e}', err=True)
        sys.exit(1)

    click.echo(f'Restored {restored}')

    if delete and session.confirm(f'delete {path}?'):
        if not CleanupPolicy(events=session.events).remove_after_restore(path):
            click.echo(f'Warning: could not delete {path}', err=True)


@cli.command('list')
@click.argument('path', type=click.Path())
@click.pass_obj
def list_backups(session, path):
    """Show existing backups of a file or directory."""
    try:
        artifacts = find_artifacts(path)
    except (BackupError, OSError) as e:
        click.echo(f'Error: {e}', err=True)
        sys.exit(1)

    if not artifacts:
        click.echo(f'No backups found for {path}')
        return

    for artifact in artifacts:
        created = artifact.created_at.strftime('%Y-%m-%d %H:%M:%S')
        click.echo(f'{artifact.path}\t{artifact.mode.name}\t{created}')


def main():  # pragma: no cover - thin wrapper
    cli()


if __name__ == '__main__':  # pragma: no cover
    main()
