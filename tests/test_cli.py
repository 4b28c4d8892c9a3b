"""Tests for argument parsing and the command dispatcher."""

import json
import os
from unittest.mock import patch

import pytest

from esmgen.args import parse_args
from esmgen.cli import config_from_args, exit_code_for, run
from esmgen.constants import ExitCodes
from esmgen.errors import (
    BundleFailed,
    ConfigError,
    DownloadFailed,
    EntryNotFound,
    ManifestReadFailed,
    RegistryUnavailable,
    ServerBindFailed,
)
from esmgen.models import ConversionResult, PackageRequest


class TestArgs:
    """Subcommands, aliases and defaults."""

    @pytest.mark.parametrize("alias", ["download", "dl", "d"])
    def test_download_aliases(self, alias):
        args = parse_args([alias, "left-pad"])
        assert args.action == "download"
        assert args.PACKAGE == "left-pad"
        assert args.VERSION == "latest"

    def test_download_options(self):
        args = parse_args(["download", "react", "18.2.0", "--dir", "web/esm", "--minify", "--serve", "--port", "8080"])
        assert args.VERSION == "18.2.0"
        assert args.DIR == "web/esm"
        assert args.MINIFY is True
        assert args.SERVE is True
        assert args.PORT == 8080
        assert args.TRANSPILE_TYPESCRIPT is None

    def test_no_transpile_flag(self):
        assert parse_args(["dl", "x", "--no-transpile"]).TRANSPILE_TYPESCRIPT is False

    @pytest.mark.parametrize("argv,action", [
        (["serve"], "serve"),
        (["s"], "serve"),
        (["rm", "left-pad"], "remove"),
        (["i"], "install"),
        (["init"], "init"),
    ])
    def test_other_commands(self, argv, action):
        assert parse_args(argv).action == action

    def test_log_level_is_case_insensitive(self):
        assert parse_args(["init", "--loglevel", "debug"]).LOG_LEVEL == "DEBUG"

    def test_entry_file_help_names_base_directory(self, capsys):
        with pytest.raises(SystemExit):
            parse_args(["serve", "--help"])
        text = " ".join(capsys.readouterr().out.split())
        assert "a relative path is taken from the served directory" in text

    def test_config_from_args_maps_overrides(self, tmp_path):
        args = parse_args(["serve", "--project-root", str(tmp_path), "--port", "4100", "--dir", "out"])
        config = config_from_args(args)
        assert config.port == 4100
        assert config.output_root == os.path.join(str(tmp_path), "out")
        assert config.minify is False


class TestExitCodes:
    """Error to exit code mapping."""

    @pytest.mark.parametrize("error,code", [
        (RegistryUnavailable("x"), ExitCodes.CONNECTION_ERROR),
        (DownloadFailed("x"), ExitCodes.CONNECTION_ERROR),
        (ConfigError("x"), ExitCodes.FILE_ERROR),
        (ManifestReadFailed("x"), ExitCodes.FILE_ERROR),
        (ServerBindFailed("x"), ExitCodes.SERVER_ERROR),
        (BundleFailed("x"), ExitCodes.CONVERSION_ERROR),
        (EntryNotFound("x"), ExitCodes.CONVERSION_ERROR),
    ])
    def test_mapping(self, error, code):
        assert exit_code_for(error) == code.value


class TestRun:
    """Command execution."""

    def test_no_command_prints_help(self, capsys):
        assert run([]) == ExitCodes.FILE_ERROR.value
        assert "usage" in capsys.readouterr().out

    def test_init_creates_manifest(self, tmp_path):
        assert run(["init", "--project-root", str(tmp_path)]) == 0
        with open(tmp_path / "esmgen.json", encoding="utf-8") as fh:
            assert json.load(fh) == {"packages": {}}

    def test_init_is_idempotent(self, tmp_path):
        (tmp_path / "esmgen.json").write_text('{"packages": {"a": "1.0.0"}}')
        assert run(["init", "--project-root", str(tmp_path)]) == 0
        assert "a" in (tmp_path / "esmgen.json").read_text()

    def test_download_requires_package(self, tmp_path):
        assert run(["download", "--project-root", str(tmp_path)]) == ExitCodes.FILE_ERROR.value

    def test_download_failure_exit_code(self, tmp_path):
        request = PackageRequest("left-pad")
        failed = ConversionResult(request=request, error=RegistryUnavailable("offline", package="left-pad"))
        with patch("esmgen.pipeline.converter.PackageConverter.convert_many", return_value=[failed]):
            code = run(["download", "left-pad", "--project-root", str(tmp_path)])
        assert code == ExitCodes.CONNECTION_ERROR.value

    def test_install_converts_manifest_entries(self, tmp_path):
        (tmp_path / "esmgen.json").write_text('{"packages": {"left-pad": "1.3.0", "react": "18.2.0"}}')
        with patch("esmgen.pipeline.converter.PackageConverter.convert_many", return_value=[]) as convert_many:
            assert run(["install", "--project-root", str(tmp_path)]) == 0
        requested = list(convert_many.call_args.args[0])
        assert requested == [PackageRequest("left-pad", "1.3.0"), PackageRequest("react", "18.2.0")]

    def test_install_without_manifest(self, tmp_path):
        assert run(["install", "--project-root", str(tmp_path)]) == 0

    def test_remove_deletes_output(self, tmp_path):
        (tmp_path / "esmgen.json").write_text('{"packages": {"left-pad": "1.3.0"}}')
        (tmp_path / "esm" / "left-pad@1.3.0").mkdir(parents=True)

        assert run(["rm", "left-pad", "--project-root", str(tmp_path)]) == 0

        assert not (tmp_path / "esm" / "left-pad@1.3.0").exists()
        assert json.loads((tmp_path / "esmgen.json").read_text()) == {"packages": {}}

    def test_corrupt_manifest_is_file_error(self, tmp_path):
        (tmp_path / "esmgen.json").write_text("{oops")
        assert run(["install", "--project-root", str(tmp_path)]) == ExitCodes.FILE_ERROR.value

    def test_bad_config_is_file_error(self, tmp_path):
        code = run(["init", "--project-root", str(tmp_path), "--config", str(tmp_path / "missing.yml")])
        assert code == ExitCodes.FILE_ERROR.value

    def test_serve_bind_failure(self, tmp_path):
        with patch("esmgen.server.static.run_server_sync", side_effect=ServerBindFailed("port taken")):
            assert run(["serve", "--project-root", str(tmp_path)]) == ExitCodes.SERVER_ERROR.value
