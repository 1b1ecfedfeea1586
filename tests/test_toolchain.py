import shlex
import sys

from services.toolchain import CommandToolchain


def _python_command(script: str) -> str:
    return f"{shlex.quote(sys.executable)} -c {shlex.quote(script)}"


def test_command_receives_manifest_and_captures_output(tmp_path):
    manifest = tmp_path / "App.csproj"
    manifest.write_text("<Project />")
    script = "import sys, os; print('building', os.path.basename(sys.argv[1])); print('warn', file=sys.stderr)"

    outcome = CommandToolchain(_python_command(script)).build(manifest)

    assert outcome.succeeded
    assert "building App.csproj" in outcome.diagnostics
    assert "warn" in outcome.diagnostics


def test_nonzero_exit_is_reported_not_raised(tmp_path):
    manifest = tmp_path / "App.csproj"
    manifest.write_text("<Project />")

    outcome = CommandToolchain(_python_command("import sys; sys.exit(3)")).build(manifest)

    assert outcome.returncode == 3
    assert not outcome.succeeded


def test_missing_command(tmp_path):
    outcome = CommandToolchain("definitely-not-a-build-tool build").build(tmp_path / "App.csproj")

    assert outcome.returncode == 127
    assert not outcome.succeeded


def test_timeout(tmp_path):
    manifest = tmp_path / "App.csproj"
    manifest.write_text("<Project />")

    outcome = CommandToolchain(_python_command("import time; time.sleep(5)"), timeout_seconds=0.2).build(manifest)

    assert outcome.timed_out
    assert not outcome.succeeded
