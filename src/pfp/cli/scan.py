"""CLI scan command: dry run showing what a pass would process"""

import sys

import click

from pfp.models import ScanChunk, ScanResponse
from pfp.scheduler import iter_chunks
from pfp.utils import DEFAULT_CHUNK_SIZE, get_int_env
from pfp.walker import iter_file_tasks, normalize_extensions


@click.command('scan')
@click.argument('input_path', type=click.Path(exists=True, file_okay=False, dir_okay=True, readable=True))
@click.option('--extensions', '-e', type=str, default=None, help='Comma separated extensions to include')
@click.option(
    '--chunk-size',
    '-c',
    type=click.IntRange(min=1),
    default=None,
    help=f'Number of files per chunk (default: {DEFAULT_CHUNK_SIZE}, env: PFP_CHUNK_SIZE)',
)
@click.option('--json', 'json_output', is_flag=True, help='Output in JSON format')
def scan_command(input_path: str, extensions: str | None, chunk_size: int | None, json_output: bool):
    """List the files a pass would process, grouped into chunks.

    Nothing is executed.

    \b
    Examples:
        pfp scan /data/videos
        pfp scan /data/videos -e "mp4,flv" -c 10
        pfp scan /data/videos --json
    """
    if chunk_size is None:
        chunk_size = get_int_env('PFP_CHUNK_SIZE', DEFAULT_CHUNK_SIZE)
    if chunk_size < 1:
        click.echo(f'❌ Error: chunk size must be >= 1, got {chunk_size}', err=True)
        sys.exit(1)

    ext_filter = normalize_extensions(extensions)

    try:
        tasks = iter_file_tasks(input_path, ext_filter)
        chunks = [ScanChunk(index=chunk.index, files=[t.path for t in chunk]) for chunk in iter_chunks(tasks, chunk_size)]
    except OSError as e:
        click.echo(f'❌ Error: {e}', err=True)
        sys.exit(1)

    response = ScanResponse(
        input_path=input_path,
        extensions=sorted(ext_filter),
        chunk_size=chunk_size,
        total=sum(len(c.files) for c in chunks),
        chunks=chunks,
    )

    if json_output:
        click.echo(response.model_dump_json(indent=2))
        return

    if not response.total:
        click.echo('No files to process.')
        return

    for chunk in response.chunks:
        click.echo(f'Chunk {chunk.index} ({len(chunk.files)}):')
        for path in chunk.files:
            click.echo(f'  {path}')
    click.echo(f'{response.total} files in {len(response.chunks)} chunks')
