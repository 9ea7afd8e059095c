from pathlib import Path

import pytest

from warf.campaign.errors import SpawnError
from warf.campaign.runner import ProcessRunner

TARGETS_RS = """\
/// Fuzzing `wasmi::validate_module`.
pub fn fuzz_wasmi_validate(data: &[u8]) {
    let _ = data;
}

/// Fuzzing `wasmi::ModuleInstance` with default `ImportsBuilder`.
pub fn fuzz_wasmi_instantiate(data: &[u8]) {
    let _ = data;
}

pub fn fuzz_other(data: &[u8]) {
    let _ = data;
}
"""

TEMPLATE_RS = """\
#![no_main]
use libfuzzer_sys::fuzz_target;
fuzz_target!(|data: &[u8]| {
    targets::fuzz_###TARGET###(data);
});
"""

DEBUG_TEMPLATE_RS = """\
fn main() {
    let data = std::fs::read(std::env::args().nth(1).unwrap()).unwrap();
    targets::fuzz_###TARGET###(&data);
}
"""


def write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Create the static project tree the orchestrator expects."""
    root = tmp_path / "warf"
    write(root / "targets" / "Cargo.toml", '[package]\nname = "targets"\n')
    write(root / "targets" / "src" / "lib.rs", TARGETS_RS)

    for name in ("afl", "honggfuzz", "libfuzzer"):
        definition = root / f"fuzzer-{name}"
        write(definition / "Cargo.toml", f'[package]\nname = "warf-{name}"\n')
        write(definition / "template.rs", TEMPLATE_RS)
        write(definition / "src" / "lib.rs", f"// {name} library\n")
    write(root / "fuzzer-libfuzzer" / "fuzz" / "Cargo.toml", '[package]\nname = "warf-libfuzzer-fuzz"\n')

    write(root / "debug" / "Cargo.toml", '[package]\nname = "warf-debug"\n')
    write(root / "debug" / "debug_template.rs", DEBUG_TEMPLATE_RS)
    write(root / "debug" / "src" / "lib.rs", "// debug library\n")
    return root


class FakeRunner(ProcessRunner):
    """Records every command instead of spawning it.

    `results` maps a command (tuple of program and args) to either an exit
    status or an exception to raise; anything unmapped exits with 0.
    """

    def __init__(self, results: dict | None = None):
        self.results = results or {}
        self.calls: list[dict] = []

    def run(self, command, args=(), env_overrides=None, working_dir=None) -> int:
        cmd = (command, *args)
        self.calls.append({"cmd": list(cmd), "env": dict(env_overrides or {}), "cwd": working_dir})
        result = self.results.get(cmd, 0)
        if callable(result) and not isinstance(result, type):
            result = result()
        if isinstance(result, BaseException):
            raise result
        return result

    def commands(self) -> list[list[str]]:
        return [call["cmd"] for call in self.calls]


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


def spawn_error(*cmd: str) -> SpawnError:
    return SpawnError(list(cmd))
