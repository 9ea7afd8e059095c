from pathlib import Path

import pytest

from warf.campaign.backends import (
    AflBackend,
    FuzzerKind,
    HonggfuzzBackend,
    LibfuzzerBackend,
    get_backend,
)
from warf.campaign.layout import DirectoryRole, WorkspaceLayout


@pytest.fixture
def layout(tmp_path: Path) -> WorkspaceLayout:
    return WorkspaceLayout(tmp_path)


@pytest.mark.parametrize(
    "kind,definition,work,session",
    [
        (FuzzerKind.AFL, "fuzzer-afl", "workspace/afl", "workspace/afl/afl_workspace"),
        (FuzzerKind.HONGGFUZZ, "fuzzer-honggfuzz", "workspace/hfuzz", "workspace/hfuzz/hfuzz_workspace"),
        (FuzzerKind.LIBFUZZER, "fuzzer-libfuzzer", "workspace/libfuzzer", "workspace/libfuzzer/libfuzzer_workspace"),
    ],
)
def test_directory_for_roles(layout, kind, definition, work, session):
    backend = get_backend(kind, layout)
    assert backend.directory_for(DirectoryRole.DEFINITION) == layout.root / definition
    assert backend.directory_for(DirectoryRole.WORK) == layout.root / work
    assert backend.directory_for(DirectoryRole.SESSION) == layout.root / session


def test_backends_never_share_work_dirs(layout):
    work_dirs = {get_backend(kind, layout).work_dir for kind in FuzzerKind}
    assert len(work_dirs) == len(FuzzerKind)


def test_get_backend_is_case_insensitive(layout):
    assert isinstance(get_backend("Afl", layout), AflBackend)
    assert isinstance(get_backend("HONGGFUZZ", layout), HonggfuzzBackend)
    assert isinstance(get_backend("libfuzzer", layout), LibfuzzerBackend)


def test_unknown_fuzzer_kind():
    with pytest.raises(ValueError, match="unknown fuzzer"):
        FuzzerKind.parse("radamsa")


def test_harness_dirs(layout):
    assert get_backend(FuzzerKind.AFL, layout).harness_path("foo") == layout.root / "workspace/afl/src/bin/foo.rs"
    assert (
        get_backend(FuzzerKind.LIBFUZZER, layout).harness_path("foo")
        == layout.root / "workspace/libfuzzer/fuzz/fuzz_targets/foo.rs"
    )


def test_honggfuzz_run_invocation(layout):
    backend = HonggfuzzBackend(layout)

    [invocation] = backend.run_invocations("wasmi_validate", 10, ["-n", "4"])

    assert invocation.command == ["cargo", "hfuzz", "run", "wasmi_validate"]
    assert invocation.cwd == backend.work_dir
    assert invocation.env == {
        "HFUZZ_RUN_ARGS": "--run_time 10 -n 4",
        "HFUZZ_INPUT": str(layout.seed_dir),
    }


def test_honggfuzz_run_invocation_without_timeout(layout):
    [invocation] = HonggfuzzBackend(layout).run_invocations("foo", None, [])
    assert invocation.env["HFUZZ_RUN_ARGS"] == ""


def test_honggfuzz_builds_once(layout):
    invocations = HonggfuzzBackend(layout).build_invocations(["a", "b"])
    assert [inv.command for inv in invocations] == [["cargo", "hfuzz", "build"]]


def test_afl_builds_each_target(layout):
    invocations = AflBackend(layout).build_invocations(["a", "b"])
    assert [inv.command for inv in invocations] == [
        ["cargo", "afl", "build", "--bin", "a"],
        ["cargo", "afl", "build", "--bin", "b"],
    ]


def test_afl_run_builds_then_fuzzes_from_seeds(layout):
    backend = AflBackend(layout)

    build, fuzz = backend.run_invocations("foo", 30, ["-m", "none"])

    assert build.command == ["cargo", "afl", "build", "--bin", "foo"]
    assert fuzz.command == [
        "cargo",
        "afl",
        "fuzz",
        "-i",
        str(layout.seed_dir),
        "-o",
        str(backend.session_dir),
        "-V",
        "30",
        "-m",
        "none",
        "--",
        "./target/debug/foo",
    ]
    assert fuzz.cwd == backend.work_dir


def test_afl_run_resumes_existing_session(layout):
    backend = AflBackend(layout)
    queue = backend.session_dir / "queue"
    queue.mkdir(parents=True)
    (queue / "id:000000").write_bytes(b"\x00asm")

    _, fuzz = backend.run_invocations("foo", None, [])

    assert fuzz.args[fuzz.args.index("-i") + 1] == "-"
    assert "-V" not in fuzz.args


def test_afl_empty_queue_starts_from_seeds(layout):
    backend = AflBackend(layout)
    (backend.session_dir / "queue").mkdir(parents=True)

    _, fuzz = backend.run_invocations("foo", None, [])

    assert fuzz.args[fuzz.args.index("-i") + 1] == str(layout.seed_dir)


def test_libfuzzer_run_invocation(layout):
    backend = LibfuzzerBackend(layout)

    [invocation] = backend.run_invocations("foo", 5, [])

    assert invocation.command == ["cargo", "fuzz", "run", "foo", str(layout.seed_dir), "--", "-max_total_time=5"]
    assert invocation.cwd == backend.fuzz_dir


def test_libfuzzer_run_invocation_without_engine_args(layout):
    [invocation] = LibfuzzerBackend(layout).run_invocations("foo", None, [])
    assert "--" not in invocation.args


def test_directory_for_is_pure(layout):
    backend = AflBackend(layout)
    backend.directory_for(DirectoryRole.SESSION)
    assert not layout.workspace_dir.exists()


def test_honggfuzz_run_args_keep_quoting(layout):
    [invocation] = HonggfuzzBackend(layout).run_invocations("foo", 10, ["--dict", "my dict.txt"])
    assert invocation.env["HFUZZ_RUN_ARGS"] == "--run_time 10 --dict 'my dict.txt'"


def test_afl_build_invocations_carry_target(layout):
    invocations = AflBackend(layout).build_invocations(["a", "b"])
    assert [inv.target for inv in invocations] == ["a", "b"]
    assert HonggfuzzBackend(layout).build_invocations(["a", "b"])[0].target is None
