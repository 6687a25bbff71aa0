"""Tests for the pfp command line: run, scan, exit codes and output formats."""

import json
import os
import shutil
import signal
import subprocess
import sys
import tempfile
import threading
import time

import pytest
from click.testing import CliRunner
from conftest import make_script, make_tree, posix_only

from pfp.__version__ import __version__
from pfp.cli.main import cli


# Keep log lines out of the captured output so JSON can be parsed
QUIET = {'PFP_LOG_LEVEL': 'ERROR'}


class TestCLIRun:
    """Test the run command (also the default command)."""

    def setup_method(self):
        self.runner = CliRunner()
        self.temp_dir = os.path.realpath(tempfile.mkdtemp(prefix='pfp_cli_'))
        self.root = os.path.join(self.temp_dir, 'data')
        make_tree(self.root, ['a.mp4', 'b.txt', 'c.flv'])

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_default_command_is_run(self):
        result = self.runner.invoke(cli, [self.root], env=QUIET)
        assert result.exit_code == 0
        assert 'Pass 1: 3 files in 1 chunks' in result.output
        assert 'Succeeded: 3' in result.output

    def test_explicit_run_command(self):
        result = self.runner.invoke(cli, ['run', self.root, '-e', 'mp4'], env=QUIET)
        assert result.exit_code == 0
        assert 'Pass 1: 1 files in 1 chunks' in result.output

    def test_json_output(self):
        result = self.runner.invoke(cli, [self.root, '-e', 'mp4,flv', '-c', '1', '-j', '2', '--json'], env=QUIET)
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data['pass_number'] == 1
        assert data['total'] == 2
        assert data['succeeded'] == 2
        assert data['failed'] == 0
        assert data['chunks'] == 2
        assert data['failed_files'] == []
        assert data['interrupted'] is False

    @posix_only
    def test_filtered_run_with_true(self):
        result = self.runner.invoke(
            cli, [self.root, '-e', 'mp4,flv', '-c', '2', '-j', '2', '-s', 'true', '--json'], env=QUIET
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert (data['total'], data['succeeded'], data['chunks']) == (2, 2, 1)

    @posix_only
    def test_file_failures_do_not_change_exit_code(self):
        result = self.runner.invoke(cli, [self.root, '-s', 'false'])
        assert result.exit_code == 0
        assert 'Failed: 3' in result.output
        for name in ('a.mp4', 'b.txt', 'c.flv'):
            assert f'Failed: {os.path.join(self.root, name)}' in result.output

    @posix_only
    def test_script_path(self):
        script = make_script(self.temp_dir, 'ok.sh', 'exit 0')
        result = self.runner.invoke(cli, [self.root, '--script', script], env=QUIET)
        assert result.exit_code == 0
        assert 'Succeeded: 3' in result.output

    def test_missing_script_exits_1(self):
        result = self.runner.invoke(cli, [self.root, '-s', os.path.join(self.temp_dir, 'no-such-script.sh')])
        assert result.exit_code == 1
        assert '❌ Error:' in result.output
        assert 'no-such-script.sh' in result.output

    @posix_only
    def test_non_executable_script_exits_1(self):
        script = make_script(self.temp_dir, 'noexec.sh', 'exit 0')
        os.chmod(script, 0o600)
        result = self.runner.invoke(cli, [self.root, '-s', script])
        assert result.exit_code == 1
        assert 'not executable' in result.output

    def test_missing_input_path_is_usage_error(self):
        result = self.runner.invoke(cli, [os.path.join(self.temp_dir, 'missing')])
        assert result.exit_code == 2

    def test_input_path_must_be_directory(self):
        result = self.runner.invoke(cli, [os.path.join(self.root, 'a.mp4')])
        assert result.exit_code == 2

    @pytest.mark.parametrize('args', [['-c', '0'], ['-j', '0'], ['-t', '-1'], ['--chunk-size', 'abc']])
    def test_invalid_numeric_options(self, args):
        result = self.runner.invoke(cli, [self.root, *args])
        assert result.exit_code == 2

    def test_chunk_size_from_env(self):
        result = self.runner.invoke(cli, [self.root, '--json'], env={**QUIET, 'PFP_CHUNK_SIZE': '1'})
        assert result.exit_code == 0
        assert json.loads(result.output)['chunks'] == 3

    def test_option_overrides_env(self):
        result = self.runner.invoke(cli, [self.root, '-c', '2', '--json'], env={**QUIET, 'PFP_CHUNK_SIZE': '1'})
        assert result.exit_code == 0
        assert json.loads(result.output)['chunks'] == 2

    def test_out_of_range_env_value_exits_1(self):
        result = self.runner.invoke(cli, [self.root], env={'PFP_CHUNK_SIZE': '0'})
        assert result.exit_code == 1
        assert '❌ Error:' in result.output

    def test_debug_logs_processed_files(self):
        result = self.runner.invoke(cli, [self.root, '-d', '-j', '1'])
        assert result.exit_code == 0
        assert 'Processed file:' in result.output
        assert 'PFP: Finished processing all files in input-path.' in result.output


class TestCLIScan:
    """Test the scan (dry run) command."""

    def setup_method(self):
        self.runner = CliRunner()
        self.temp_dir = os.path.realpath(tempfile.mkdtemp(prefix='pfp_cli_'))
        self.files = make_tree(self.temp_dir, ['a.mp4', 'b.txt', 'sub/c.flv', 'sub/d.MP4', 'z.flv'])

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_scan_plain(self):
        result = self.runner.invoke(cli, ['scan', self.temp_dir, '-c', '2'])
        assert result.exit_code == 0
        assert 'Chunk 1 (2):' in result.output
        assert 'Chunk 3 (1):' in result.output
        assert '5 files in 3 chunks' in result.output

    def test_scan_json_order_and_filter(self):
        result = self.runner.invoke(cli, ['scan', self.temp_dir, '-e', 'mp4,flv', '-c', '2', '--json'])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data['extensions'] == ['flv', 'mp4']
        assert data['total'] == 4
        assert [c['index'] for c in data['chunks']] == [1, 2]
        files = [p for c in data['chunks'] for p in c['files']]
        assert files == [
            os.path.join(self.temp_dir, 'a.mp4'),
            os.path.join(self.temp_dir, 'sub', 'c.flv'),
            os.path.join(self.temp_dir, 'sub', 'd.MP4'),
            os.path.join(self.temp_dir, 'z.flv'),
        ]

    def test_scan_nothing_matches(self):
        result = self.runner.invoke(cli, ['scan', self.temp_dir, '-e', 'avi'])
        assert result.exit_code == 0
        assert 'No files to process.' in result.output

    def test_scan_chunk_size_from_env(self):
        result = self.runner.invoke(cli, ['scan', self.temp_dir, '--json'], env={'PFP_CHUNK_SIZE': '4'})
        assert result.exit_code == 0
        assert [len(c['files']) for c in json.loads(result.output)['chunks']] == [4, 1]

    def test_scan_invalid_env_chunk_size(self):
        result = self.runner.invoke(cli, ['scan', self.temp_dir], env={'PFP_CHUNK_SIZE': '0'})
        assert result.exit_code == 1


class TestCLIGroup:
    def setup_method(self):
        self.runner = CliRunner()

    def test_version(self):
        result = self.runner.invoke(cli, ['--version'])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self):
        result = self.runner.invoke(cli, [])
        assert result.exit_code == 0
        assert 'Parallel File Processor' in result.output

    def test_run_help_lists_options(self):
        result = self.runner.invoke(cli, ['run', '--help'])
        assert result.exit_code == 0
        for option in ('--daemon', '--extensions', '--chunk-size', '--job-slots', '--sleep-time', '--script'):
            assert option in result.output


@posix_only
class TestDaemonSignal:
    """Run the real executable and stop it with a signal while it sleeps."""

    def setup_method(self):
        self.temp_dir = os.path.realpath(tempfile.mkdtemp(prefix='pfp_daemon_'))
        make_tree(self.temp_dir, ['a.txt', 'b.txt'])

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    @pytest.mark.parametrize('signum', [signal.SIGINT, signal.SIGTERM])
    def test_signal_during_sleep_stops_daemon(self, signum):
        proc = subprocess.Popen(
            [sys.executable, '-m', 'pfp', self.temp_dir, '--daemon', '-t', '60', '-s', 'true'],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        sleeping = threading.Event()
        stderr_lines = []

        def read_stderr():
            for line in proc.stderr:
                stderr_lines.append(line)
                if 'Sleeping for' in line:
                    sleeping.set()

        reader = threading.Thread(target=read_stderr, daemon=True)
        reader.start()
        try:
            assert sleeping.wait(20), ''.join(stderr_lines)
            proc.send_signal(signum)
            stdout = proc.stdout.read()
            assert proc.wait(timeout=10) == 0
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait()
        reader.join(timeout=5)

        log = ''.join(stderr_lines)
        assert f'PFP: CAUGHT {signum.name}!' in log
        assert 'PFP: Daemon stopped.' in log
        assert 'Pass 1: 2 files' in stdout


@posix_only
class TestStopDuringDispatch:
    """A stop request while a script runs lets that script finish."""

    def setup_method(self):
        self.temp_dir = os.path.realpath(tempfile.mkdtemp(prefix='pfp_stop_'))
        self.root = os.path.join(self.temp_dir, 'data')
        self.markers = os.path.join(self.temp_dir, 'markers')
        os.makedirs(self.markers)
        make_tree(self.root, ['first.txt', 'second.txt'])
        self.script = make_script(
            self.temp_dir,
            'slow.sh',
            f'name=$(basename "$1")\n'
            f'touch "{self.markers}/$name.started"\n'
            f'sleep 2\n'
            f'touch "{self.markers}/$name.done"\n',
        )

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_sigint_to_process_group_does_not_kill_running_script(self):
        proc = subprocess.Popen(
            [sys.executable, '-m', 'pfp', self.root, '-j', '1', '-c', '5', '-s', self.script, '--json'],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            start_new_session=True,
        )
        started = os.path.join(self.markers, 'first.txt.started')
        try:
            deadline = time.monotonic() + 20
            while not os.path.exists(started) and time.monotonic() < deadline:
                time.sleep(0.05)
            assert os.path.exists(started)

            # Same delivery as Ctrl-C in a terminal: the whole foreground group
            os.killpg(proc.pid, signal.SIGINT)
            stdout, stderr = proc.communicate(timeout=20)
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait()

        assert proc.returncode == 0, stderr
        assert os.path.exists(os.path.join(self.markers, 'first.txt.done'))
        assert not os.path.exists(os.path.join(self.markers, 'second.txt.started'))

        data = json.loads(stdout)
        assert data['succeeded'] == 1
        assert data['cancelled'] == 1
        assert data['failed'] == 0
        assert data['interrupted'] is True
        assert 'PFP: CAUGHT SIGINT!' in stderr


@posix_only
class TestSelfReferentialSymlink:
    def setup_method(self):
        self.runner = CliRunner()
        self.temp_dir = os.path.realpath(tempfile.mkdtemp(prefix='pfp_cli_'))
        make_tree(self.temp_dir, ['a.txt', 'z.txt'])
        os.symlink('m_loop', os.path.join(self.temp_dir, 'm_loop'))

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_run_processes_remaining_files(self):
        result = self.runner.invoke(cli, [self.temp_dir, '--json'], env=QUIET)
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert (data['total'], data['succeeded']) == (2, 2)
