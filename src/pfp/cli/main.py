"""Main CLI entry point with command groups"""

import click

from pfp.__version__ import __version__
from pfp.cli.run import run_command
from pfp.cli.scan import scan_command


class DefaultCommandGroup(click.Group):
    """Custom Click Group that allows a default command"""

    def parse_args(self, ctx, args):
        # During shell completion, don't redirect to default command
        if ctx.resilient_parsing:
            return super().parse_args(ctx, args)

        # If --help or --version is requested, show group help/version
        if not args or args[0] in ('--help', '-h', '--version'):
            return super().parse_args(ctx, args)

        # Check if first arg is a known command
        if args[0] in self.commands:
            return super().parse_args(ctx, args)

        # Otherwise, treat as run command (default)
        return super().parse_args(ctx, ['run'] + args)


@click.group(cls=DefaultCommandGroup, invoke_without_command=True)
@click.version_option(version=__version__, prog_name='PFP')
@click.pass_context
def cli(ctx):
    """
    PFP (Parallel File Processor) - run a command against every file under a directory.

    \b
    Commands:
      pfp <input_path> [options]   Process all files (default command)
      pfp scan <input_path>        Show which files would be processed

    \b
    Examples:
      pfp /data/videos -e "mp4,flv" -s ./upload.sh
      pfp /data/incoming --daemon -t 30 -j 4 -s ./upload.sh
      pfp scan /data/videos -e mp4 -c 10

    \b
    For more help on each command:
      pfp run --help
      pfp scan --help
    """
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)


# Register subcommands (run is the default command)
cli.add_command(run_command, name='run')
cli.add_command(scan_command, name='scan')


def main():
    """Entry point for the CLI"""
    cli()


if __name__ == '__main__':
    main()
