"""CLI run command: process every file under INPUT_PATH in parallel"""

import logging
import sys
import threading

import click
from prometheus_client import start_http_server
from pydantic import ValidationError

from pfp.driver import PassDriver, install_signal_handlers
from pfp.models import BuiltinAction, ExternalScript, RunConfig
from pfp.stop_token import StopToken
from pfp.utils import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_SLEEP_TIME,
    configure_logging,
    get_float_env,
    get_int_env,
    resolve_script,
)


logger = logging.getLogger(__name__)


def build_run_config(
    input_path: str,
    debug: bool,
    daemon: bool,
    extensions: str | None,
    chunk_size: int | None,
    job_slots: int | None,
    sleep_time: float | None,
    script: str | None,
) -> RunConfig:
    """Build the RunConfig from CLI values, falling back to PFP_* env defaults.

    Raises:
        FileNotFoundError, PermissionError, IsADirectoryError: bad script
        pydantic.ValidationError: out of range values from the environment
    """
    if chunk_size is None:
        chunk_size = get_int_env('PFP_CHUNK_SIZE', DEFAULT_CHUNK_SIZE)
    if sleep_time is None:
        sleep_time = get_float_env('PFP_SLEEP_TIME', DEFAULT_SLEEP_TIME)

    command = ExternalScript(path=resolve_script(script)) if script else BuiltinAction()

    values = dict(
        input_path=input_path,
        extensions=extensions,
        chunk_size=chunk_size,
        command=command,
        daemon=daemon,
        sleep_time=sleep_time,
        debug=debug,
    )
    # job_slots falls back to RunConfig's default (PFP_JOB_SLOTS or CPU count)
    if job_slots is not None:
        values['job_slots'] = job_slots

    return RunConfig(**values)


@click.command('run')
@click.argument('input_path', type=click.Path(exists=True, file_okay=False, dir_okay=True, readable=True))
@click.option('--debug', '-d', is_flag=True, help='Activate debug mode (verbose logs, subprocess output)')
@click.option('--daemon', is_flag=True, help='Process files in input path continuously')
@click.option(
    '--extensions',
    '-e',
    type=str,
    default=None,
    help='Comma separated extensions to process, e.g. -e "mp4,flv". Default: all files',
)
@click.option(
    '--chunk-size',
    '-c',
    type=click.IntRange(min=1),
    default=None,
    help=f'Number of files per chunk (default: {DEFAULT_CHUNK_SIZE}, env: PFP_CHUNK_SIZE)',
)
@click.option(
    '--job-slots',
    '-j',
    type=click.IntRange(min=1),
    default=None,
    help='Maximum number of parallel invocations (default: one per CPU core, env: PFP_JOB_SLOTS)',
)
@click.option(
    '--sleep-time',
    '-t',
    type=click.FloatRange(min=0),
    default=None,
    help=f'Seconds to sleep between passes, only with --daemon (default: {DEFAULT_SLEEP_TIME:g}, env: PFP_SLEEP_TIME)',
)
@click.option(
    '--script',
    '-s',
    type=str,
    default=None,
    help='Script or command run as "SCRIPT FILE_PATH" for each file. Default: built-in md5 read',
)
@click.option('--json', 'output_json', is_flag=True, help='Print the final pass summary as JSON')
@click.option(
    '--metrics-port',
    type=click.IntRange(min=1, max=65535),
    default=None,
    help='Expose Prometheus metrics on this port while running (env: PFP_METRICS_PORT)',
)
def run_command(
    input_path: str,
    debug: bool,
    daemon: bool,
    extensions: str | None,
    chunk_size: int | None,
    job_slots: int | None,
    sleep_time: float | None,
    script: str | None,
    output_json: bool,
    metrics_port: int | None,
):
    """
    Run a command against every file under INPUT_PATH in parallel.

    Files are enumerated recursively, split into chunks, and each chunk is
    processed with at most --job-slots concurrent invocations before the next
    chunk starts. Individual file failures are reported but do not change the
    exit code.

    \b
    Examples:
        pfp /data/videos -e "mp4,flv" -s ./upload.sh
        pfp /data/videos -c 100 -j 8 -s ./upload.sh
        pfp /data/incoming --daemon -t 30 -s ./upload.sh
        pfp /data/videos --json

    \b
    The script receives exactly one argument, the file path, and must exit 0
    on success. In daemon mode the whole tree is re-scanned every pass; the
    script is responsible for skipping files it already handled (e.g. via a
    marker file).

    \b
    SIGINT/SIGTERM stop the engine gracefully: running invocations finish,
    no new ones start, and the daemon sleep is interrupted immediately.
    """
    configure_logging(debug)

    try:
        config = build_run_config(
            input_path=input_path,
            debug=debug,
            daemon=daemon,
            extensions=extensions,
            chunk_size=chunk_size,
            job_slots=job_slots,
            sleep_time=sleep_time,
            script=script,
        )
    except (OSError, ValidationError) as e:
        click.echo(f'❌ Error: {e}', err=True)
        sys.exit(1)

    logger.debug(f'Parsed extensions: {sorted(config.extensions)}')
    logger.debug(f'job_slots = {config.job_slots}')
    logger.debug(f'command = {config.command.describe()}')

    if metrics_port is None:
        metrics_port = get_int_env('PFP_METRICS_PORT')
    if metrics_port:
        start_http_server(metrics_port)
        logger.info(f'Prometheus metrics available on port {metrics_port}')

    stop_token = StopToken()
    restore_signals = None
    if threading.current_thread() is threading.main_thread():
        restore_signals = install_signal_handlers(stop_token)

    try:
        driver = PassDriver(config, stop_token=stop_token)
        summary = driver.run()
    except OSError as e:
        click.echo(f'❌ Error: {e}', err=True)
        sys.exit(1)
    finally:
        if restore_signals is not None:
            restore_signals()

    if summary is None:
        if output_json:
            click.echo('null')
        return

    if output_json:
        click.echo(summary.model_dump_json(indent=2))
    else:
        click.echo(summary.to_cli())
