"""Shared fixtures for esmgen tests."""

import io
import json
import os
import subprocess
import tarfile

import pytest


def make_tarball(files, wrapper="package"):
    """Build an in-memory .tgz; ``files`` maps relative path -> str/bytes/dict."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as archive:
        for rel, content in files.items():
            if isinstance(content, dict):
                content = json.dumps(content)
            data = content.encode("utf-8") if isinstance(content, str) else content
            name = f"{wrapper}/{rel}" if wrapper else rel
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            archive.addfile(info, io.BytesIO(data))
    buf.seek(0)
    return buf


def write_package(root, files):
    """Write ``files`` under ``root`` (a pathlib.Path); dicts become JSON."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, dict):
            content = json.dumps(content)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content)
    return root


@pytest.fixture
def tarball():
    return make_tarball


@pytest.fixture
def package_dir(tmp_path):
    """Factory writing a package tree under tmp_path/pkg."""
    def _make(files):
        return write_package(tmp_path / "pkg", files)
    return _make


class FakeRunner:
    """Stand-in for subprocess.run driving esbuild; records calls.

    On success it writes the bundle and a metafile listing the entry plus
    ``extra_inputs`` (paths relative to the working directory).
    """

    def __init__(self, returncode=0, stderr="", write_output=True, exc=None, extra_inputs=()):
        self.returncode = returncode
        self.stderr = stderr
        self.write_output = write_output
        self.exc = exc
        self.extra_inputs = list(extra_inputs)
        self.calls = []

    @staticmethod
    def _flag(cmd, name):
        prefix = f"--{name}="
        return next((arg[len(prefix):] for arg in cmd if arg.startswith(prefix)), None)

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        if self.exc is not None:
            raise self.exc
        if self.write_output and self.returncode == 0:
            with open(self._flag(cmd, "outfile"), "w", encoding="utf-8") as fh:
                fh.write("export default {};\n")
            metafile = self._flag(cmd, "metafile")
            if metafile:
                entry = os.path.relpath(cmd[1], kwargs["cwd"])
                inputs = {key: {"bytes": 1, "imports": []} for key in [entry] + self.extra_inputs}
                with open(metafile, "w", encoding="utf-8") as fh:
                    json.dump({"inputs": inputs, "outputs": {}}, fh)
        return subprocess.CompletedProcess(cmd, self.returncode, stdout="", stderr=self.stderr)
