"""Unit tests for the ssh connector, run against the fake remote host."""

import asyncio
from dataclasses import replace

import pytest

from remote_relay.config import RelayConfig
from remote_relay.connector import CommandResult, SSHConnector
from remote_relay.exceptions import (
    AbnormalExitError,
    ConnectionFailedError,
    TransportError,
    TransportTimeoutError,
)


class TestCommandResult:
    """Tests for CommandResult."""

    def test_success(self):
        assert CommandResult(stdout="", stderr="", exit_code=0).success is True
        assert CommandResult(stdout="", stderr="", exit_code=1).success is False

    def test_strict_stdout_without_raw_bytes(self):
        assert CommandResult(stdout="text", stderr="", exit_code=0).strict_stdout() == "text"


class TestSSHArgs:
    """Tests for the ssh argument vector."""

    def test_multiplexing_options(self):
        connector = SSHConnector(RelayConfig(host="devbox", control_path="/tmp/cm-%r@%h:%p"))

        args = connector.ssh_args("-O", "check")

        assert args == [
            "ssh",
            "-o", "ControlPath=/tmp/cm-%r@%h:%p",
            "-o", "ControlMaster=auto",
            "-o", "ControlPersist=600",
            "-O", "check",
            "devbox",
        ]

    def test_user_port_and_extra_options(self):
        config = RelayConfig(
            host="devbox",
            user="dev",
            port=2222,
            ssh_options=("-o", "BatchMode=yes"),
            control_path="/cp",
        )

        args = SSHConnector(config).ssh_args()

        assert args[-1] == "devbox"
        assert args[7:] == ["-l", "dev", "-p", "2222", "-o", "BatchMode=yes", "devbox"]


class TestRun:
    """Tests for SSHConnector.run()."""

    @pytest.mark.asyncio
    async def test_captures_stdout(self, fake_remote):
        connector = SSHConnector(fake_remote.config)

        result = await connector.run("echo hello")

        assert result.stdout == "hello\n"
        assert result.stderr == ""
        assert result.exit_code == 0

    @pytest.mark.asyncio
    async def test_remote_failure_is_returned(self, fake_remote):
        connector = SSHConnector(fake_remote.config)

        result = await connector.run("echo oops >&2; exit 3")

        assert result.exit_code == 3
        assert result.stderr == "oops\n"
        assert result.success is False

    @pytest.mark.asyncio
    async def test_unreachable_host_raises(self, fake_remote):
        fake_remote.make_unreachable()
        connector = SSHConnector(fake_remote.config)

        with pytest.raises(ConnectionFailedError) as exc_info:
            await connector.run("true")

        assert "Connection refused" in str(exc_info.value)
        assert "Connection refused" in exc_info.value.stderr

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self, fake_remote):
        config = replace(fake_remote.config, ssh_binary="/nonexistent/ssh")

        with pytest.raises(ConnectionFailedError):
            await SSHConnector(config).run("true")

    @pytest.mark.asyncio
    async def test_timeout_raises(self, fake_remote):
        connector = SSHConnector(fake_remote.config)

        with pytest.raises(TransportTimeoutError) as exc_info:
            await connector.run("sleep 5", timeout_ms=200)

        assert exc_info.value.timeout_ms == 200
        assert isinstance(exc_info.value, TransportError)

    @pytest.mark.asyncio
    async def test_killed_by_signal_is_not_success(self, fake_remote):
        connector = SSHConnector(fake_remote.config)

        with pytest.raises(AbnormalExitError) as exc_info:
            await connector.run("kill -9 $$")

        assert exc_info.value.signal == 9

    @pytest.mark.asyncio
    async def test_input_data_reaches_stdin(self, fake_remote):
        connector = SSHConnector(fake_remote.config)

        result = await connector.run("wc -c", input_data=b"x" * 300_000)

        assert result.stdout.strip() == "300000"

    @pytest.mark.asyncio
    async def test_keeps_raw_stdout(self, fake_remote):
        connector = SSHConnector(fake_remote.config)

        result = await connector.run("printf 'a\\377b'")

        assert result.stdout == "a\ufffdb"
        assert result.stdout_bytes == b"a\xffb"
        with pytest.raises(UnicodeDecodeError):
            result.strict_stdout()

    @pytest.mark.asyncio
    async def test_run_script_from_stdin(self, fake_remote, tmp_path):
        connector = SSHConnector(fake_remote.config)
        script = f"cd '{tmp_path}'\npwd\necho done\n"

        result = await connector.run_script(script)

        assert result.stdout == f"{tmp_path}\ndone\n"

    @pytest.mark.asyncio
    async def test_concurrent_calls(self, fake_remote):
        connector = SSHConnector(fake_remote.config)

        results = await asyncio.gather(*(connector.run(f"echo {i}") for i in range(5)))

        assert [r.stdout for r in results] == [f"{i}\n" for i in range(5)]


class TestCheckMaster:
    """Tests for SSHConnector.check_master()."""

    @pytest.mark.asyncio
    async def test_no_master(self, fake_remote):
        assert await SSHConnector(fake_remote.config).check_master() is False

    @pytest.mark.asyncio
    async def test_master_running(self, fake_remote):
        fake_remote.start_master()
        assert await SSHConnector(fake_remote.config).check_master() is True

    @pytest.mark.asyncio
    async def test_missing_binary(self, fake_remote):
        config = replace(fake_remote.config, ssh_binary="/nonexistent/ssh")
        assert await SSHConnector(config).check_master() is False
