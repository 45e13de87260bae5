import pathlib
import subprocess

import pytest

from udf_format.tools import Toolset

DISK_SIZE = 4 * 1024 * 1024  # 4 MB


class FakeCommands:
    """Stand-in for subprocess.run

    Output is looked up by the program name and its first argument, commands
    without a registered output succeed with empty output.
    """

    def __init__(self):
        self.outputs = {}
        self.failures = set()
        self.calls = []

    def add(self, program, first_arg, stdout):
        self.outputs[(program, first_arg)] = stdout

    def fail(self, program, first_arg=None):
        self.failures.add((program, first_arg))

    def called(self, program):
        return [c for c in self.calls if pathlib.PurePath(c[0]).name == program]

    def __call__(self, args, check=False, **kwargs):
        args = [str(a) for a in args]
        self.calls.append(args)
        program = pathlib.PurePath(args[0]).name
        first_arg = args[1] if len(args) > 1 else None
        if (program, first_arg) in self.failures or (program, None) in self.failures:
            if check:
                raise subprocess.CalledProcessError(1, args)
            return subprocess.CompletedProcess(args, 1, stdout="", stderr="")
        stdout = self.outputs.get((program, first_arg), "")
        return subprocess.CompletedProcess(args, 0, stdout=stdout, stderr="")


@pytest.fixture
def commands(monkeypatch):
    fake = FakeCommands()
    monkeypatch.setattr(subprocess, "run", fake)
    return fake


@pytest.fixture
def linux_tools():
    return Toolset(
        "/sbin/blockdev",
        "/sbin/blockdev",
        "/bin/umount",
        "/usr/bin/mkudffs",
        drive_summary="/sbin/blkid",
    )


@pytest.fixture
def macos_tools():
    return Toolset(
        "/usr/sbin/ioreg",
        "/usr/sbin/diskutil",
        "/usr/sbin/diskutil",
        "/sbin/newfs_udf",
    )


@pytest.fixture
def dev_dir(tmp_path):
    """Directory standing in for /dev with a 4 MB device named sdb

    The device is filled with 0xFF so that zeroed regions can be told apart.
    """

    image = tmp_path / "sdb"
    image.write_bytes(b"\xff" * DISK_SIZE)
    return tmp_path
