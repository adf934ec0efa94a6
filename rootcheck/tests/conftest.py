"""Shared fixtures for rootcheck tests."""

import os
import stat
from pathlib import Path

import pytest

from rootcheck import EnvironmentContext, ProcessRunner


@pytest.fixture
def fake_root(tmp_path):
    """A small root tree: debian_version plus the /dev links debootstrap makes."""
    root = tmp_path / "root"
    (root / "etc").mkdir(parents=True)
    (root / "etc" / "debian_version").write_text("trixie/sid\n")
    dev = root / "dev"
    (dev / "pts").mkdir(parents=True)
    (dev / "shm").mkdir()
    os.symlink("/proc/self/fd", dev / "fd")
    os.symlink("/proc/self/fd/0", dev / "stdin")
    os.symlink("/proc/self/fd/1", dev / "stdout")
    os.symlink("/proc/self/fd/2", dev / "stderr")
    os.symlink("pts/ptmx", dev / "ptmx")
    return root


@pytest.fixture
def context():
    """A plain bare-metal context on a recent kernel."""
    return EnvironmentContext(kernel_release="6.1.0-18-amd64")


@pytest.fixture
def runner():
    """ProcessRunner with a short default timeout."""
    return ProcessRunner(default_timeout=30)


@pytest.fixture
def wrapper_script(tmp_path):
    """Host script standing in for a chroot wrapper.

    Called as `script ROOT cat /PATH`; prints the file under ROOT.
    """
    script = tmp_path / "fake-chroot"
    script.write_text('#!/bin/sh\nroot="$1"; shift\nexec cat "$root$2"\n')
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def hanging_script(tmp_path):
    """Host script standing in for a wrapper that never returns."""
    script = tmp_path / "hang"
    script.write_text("#!/bin/sh\nexec sleep 30\n")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def scratch_dir(tmp_path, monkeypatch):
    """Scratch space exported the way autopkgtest exports it."""
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setenv("AUTOPKGTEST_TMP", str(scratch))
    return scratch


@pytest.fixture
def no_mounts(tmp_path):
    """An empty mountinfo file."""
    path = tmp_path / "mountinfo"
    path.write_text("")
    return Path(path)
