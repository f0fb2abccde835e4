"""Tests for CLI interface."""

import json
import os

from click.testing import CliRunner

from twinstub.generator.cli import cli

FILE_DIR = os.path.dirname(os.path.realpath(__file__))
NO_BUILD = {"CARGO": None, "TWINSTUB_BUILD": None}


def describe_compile_command():
    def generates_both_trees(out_dir, expect):
        runner = CliRunner()
        result = runner.invoke(
            cli,
            ["compile", f"{FILE_DIR}/greeter.proto", "-I", FILE_DIR, "-o", str(out_dir)],
            env=NO_BUILD,
        )
        expect(result.exit_code) == 0
        expect((out_dir / "helloworld.py").is_file()) == True
        expect((out_dir / "sim" / "helloworld.py").is_file()) == True
        expect("rerun-if-changed" in result.output) == False

    def defaults_includes_to_the_proto_directories(out_dir, expect):
        runner = CliRunner()
        result = runner.invoke(cli, ["compile", f"{FILE_DIR}/routeguide.proto", "-o", str(out_dir)], env=NO_BUILD)
        expect(result.exit_code) == 0
        expect((out_dir / "routeguide.py").is_file()) == True

    def reads_the_output_directory_from_the_environment(out_dir, expect):
        runner = CliRunner()
        result = runner.invoke(
            cli,
            ["compile", f"{FILE_DIR}/greeter.proto"],
            env={**NO_BUILD, "OUT_DIR": str(out_dir)},
        )
        expect(result.exit_code) == 0
        expect((out_dir / "sim" / "helloworld.py").is_file()) == True

    def applies_options_to_both_trees(out_dir, expect):
        runner = CliRunner()
        result = runner.invoke(
            cli,
            [
                "compile",
                f"{FILE_DIR}/greeter.proto",
                "-o",
                str(out_dir),
                "--no-server",
                "--no-package",
                "--proto-path",
                "_pb",
                "--client-attribute",
                ".helloworld",
                "typing.final",
                "--client-mod-attribute",
                ".",
                "import typing",
                "--disable-comments",
                ".helloworld.Greeter",
            ],
            env=NO_BUILD,
        )
        expect(result.exit_code) == 0
        for path in (out_dir / "helloworld.py", out_dir / "sim" / "helloworld.py"):
            content = path.read_text()
            expect("class GreeterServicer" in content) == False
            expect("'/Greeter/SayHello'" in content) == True
            expect("@typing.final\nclass GreeterClient:" in content) == True
            expect("Sends a greeting" in content) == False

    def prints_rerun_signals_inside_a_build(out_dir, expect):
        runner = CliRunner()
        result = runner.invoke(
            cli,
            ["compile", f"{FILE_DIR}/greeter.proto", "-I", FILE_DIR, "-o", str(out_dir)],
            env={**NO_BUILD, "TWINSTUB_BUILD": "1"},
        )
        expect(result.exit_code) == 0
        expect(f"rerun-if-changed={FILE_DIR}/greeter.proto" in result.output) == True
        expect(f"rerun-if-changed={FILE_DIR}" in result.output) == True

    def can_force_rerun_signals_off(out_dir, expect):
        runner = CliRunner()
        result = runner.invoke(
            cli,
            ["compile", f"{FILE_DIR}/greeter.proto", "-o", str(out_dir), "--no-rerun-if-changed"],
            env={**NO_BUILD, "TWINSTUB_BUILD": "1"},
        )
        expect(result.exit_code) == 0
        expect("rerun-if-changed" in result.output) == False

    def fails_without_an_output_directory(expect):
        runner = CliRunner()
        result = runner.invoke(cli, ["compile", f"{FILE_DIR}/greeter.proto"], env={**NO_BUILD, "OUT_DIR": None})
        expect(result.exit_code) == 1
        expect("OUT_DIR" in result.output) == True

    def fails_with_invalid_protos(tmp_path, out_dir, expect):
        proto = tmp_path / "broken.proto"
        proto.write_text("message {")
        runner = CliRunner()
        result = runner.invoke(cli, ["compile", str(proto), "-o", str(out_dir)], env=NO_BUILD)
        expect(result.exit_code) == 1
        expect("broken.proto:1:" in result.output) == True

    def requires_a_proto(expect):
        runner = CliRunner()
        result = runner.invoke(cli, ["compile"])
        expect(result.exit_code) != 0
        expect("Missing argument" in result.output) == True


def describe_info_command():
    def lists_services_as_json(expect):
        runner = CliRunner()
        result = runner.invoke(cli, ["info", f"{FILE_DIR}/routeguide.proto", "--json"])
        expect(result.exit_code) == 0
        methods = json.loads(result.output)["services"]["routeguide.RouteGuide"]
        expect([m["kind"] for m in methods]) == ["unary_unary", "unary_stream", "stream_unary", "stream_stream"]
        expect(methods[0]) == {
            "name": "GetFeature",
            "request": "routeguide.Point",
            "response": "routeguide.Feature",
            "kind": "unary_unary",
        }

    def lists_services_as_a_table(expect):
        runner = CliRunner()
        result = runner.invoke(cli, ["info", f"{FILE_DIR}/greeter.proto"])
        expect(result.exit_code) == 0
        expect("helloworld.Greeter" in result.output) == True
        expect("SayHello" in result.output) == True

    def fails_with_missing_input(expect):
        runner = CliRunner()
        result = runner.invoke(cli, ["info", "/nonexistent/file.proto"])
        expect(result.exit_code) == 1


def describe_main_group():
    def shows_help(expect):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        expect(result.exit_code) == 0
        expect("compile" in result.output) == True
        expect("info" in result.output) == True
