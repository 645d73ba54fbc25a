"""Pytest configuration and fixtures for remote-relay tests.

The fake_remote fixture stands in for the remote host without a network:
a fake ssh executable drops its options and runs the remote command with
sh -c, and a fake tmux keeps session state in a directory and runs each
line typed with send-keys in the background, as a session shell would.
"""

import os
from dataclasses import dataclass
from pathlib import Path

import pytest

from remote_relay.bridge import SessionBridge
from remote_relay.config import RelayConfig

FAKE_SSH = """#!/bin/sh
control=
while [ $# -gt 0 ]; do
  case "$1" in
    -o|-l|-p) shift 2 ;;
    -O) control="$2"; shift 2 ;;
    *) shift; break ;;
  esac
done
if [ -n "$control" ]; then
  test -e "$FAKE_REMOTE_DIR/master"
  exit $?
fi
if [ -e "$FAKE_REMOTE_DIR/unreachable" ]; then
  echo "ssh: connect to host fakehost port 22: Connection refused" >&2
  exit 255
fi
exec sh -c "$*"
"""

FAKE_TMUX = """#!/bin/sh
state="$FAKE_REMOTE_DIR"
cmd="$1"
shift
case "$cmd" in
  has-session) test -e "$state/alive" ;;
  new-session) touch "$state/alive" ;;
  send-keys)
    literal=
    while [ $# -gt 0 ]; do
      case "$1" in
        -t) shift 2 ;;
        -l) literal=1; shift ;;
        *) break ;;
      esac
    done
    if [ -n "$literal" ]; then
      printf '%s\\n' "$1" > "$state/typed"
    elif [ "$1" = Enter ]; then
      line="$state/line.$$"
      mv "$state/typed" "$line"
      sh "$line" </dev/null >/dev/null 2>&1 &
    fi
    ;;
esac
"""


@dataclass
class FakeRemote:
    """Handle on the fake remote host used by a test."""
    state_dir: Path
    capture_dir: Path
    config: RelayConfig

    def kill_session(self):
        (self.state_dir / "alive").unlink(missing_ok=True)

    def session_alive(self) -> bool:
        return (self.state_dir / "alive").exists()

    def make_unreachable(self):
        (self.state_dir / "unreachable").touch()

    def start_master(self):
        (self.state_dir / "master").touch()

    def capture_files(self) -> list:
        return sorted(p.name for p in self.capture_dir.iterdir())


def _install_script(path: Path, body: str):
    path.write_text(body)
    path.chmod(0o755)


@pytest.fixture
def fake_remote(tmp_path, monkeypatch):
    """A local stand-in for the remote host, wired into a fresh bridge."""
    state_dir = tmp_path / "remote-state"
    capture_dir = tmp_path / "remote-tmp"
    bin_dir = tmp_path / "bin"
    for directory in (state_dir, capture_dir, bin_dir):
        directory.mkdir()

    _install_script(bin_dir / "ssh", FAKE_SSH)
    _install_script(bin_dir / "tmux", FAKE_TMUX)

    monkeypatch.setenv("FAKE_REMOTE_DIR", str(state_dir))
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")

    config = RelayConfig(
        host="fakehost",
        tmux_session="test-relay",
        control_path=str(tmp_path / "cm-%r@%h:%p"),
        ssh_binary=str(bin_dir / "ssh"),
        command_timeout_ms=10000,
        poll_interval_ms=20,
        remote_tmpdir=str(capture_dir),
    )

    SessionBridge.reset_instance()
    SessionBridge.get_instance(config)
    yield FakeRemote(state_dir=state_dir, capture_dir=capture_dir, config=config)
    SessionBridge.reset_instance()


@pytest.fixture
def workspace(tmp_path):
    """A directory on the fake remote host, by its canonical path."""
    path = tmp_path / "workspace"
    path.mkdir()
    return Path(os.path.realpath(path))
