import asyncio

import pytest

from conftest import HANG, MemoryFileSystem, RecordingProjector, ScriptedShellRunner
from patchstream.models.blocks import FileBlock, ShellBlock, ThinkingBlock
from patchstream.models.operations import OutcomeStatus
from patchstream.services.command_guard import InteractiveCommandGuard
from patchstream.services.dispatcher import EditDispatcher, _failed, path_key
from patchstream.services.errors import StructuralValidationError
from patchstream.services.stream_parser import parse_response
from patchstream.services.workspace_fs import LocalFileSystem


def make_dispatcher(fs, runner=None, projector=None):
    guard = InteractiveCommandGuard(runner or ScriptedShellRunner())
    return EditDispatcher(fs, guard, projector=projector)


def dispatch(dispatcher, blocks):
    async def scenario():
        for block in blocks:
            dispatcher.submit(block)
        return await dispatcher.drain()

    return asyncio.run(scenario())


def patch_block(path, search, replace):
    return f'<file path="{path}" type="patch"><search>{search}</search><replace>{replace}</replace></file>'


def test_same_path_edits_apply_in_arrival_order():
    fs = MemoryFileSystem({"app.py": "x = 1\n"})
    blocks = parse_response(
        patch_block("app.py", "x = 1", "x = 2")
        + patch_block("app.py", "x = 2", "x = 3")
        + patch_block("app.py", "x = 3", "x = 4")
    )

    outcomes = dispatch(make_dispatcher(fs), blocks)

    assert [o.status for o in outcomes] == [OutcomeStatus.SUCCESS] * 3
    assert fs.files["app.py"] == "x = 4\n"


def test_duplicate_creates_leave_the_last_write():
    fs = MemoryFileSystem()
    blocks = parse_response(
        '<file path="a.txt" type="create">first</file><file path="a.txt" type="create">second</file>'
    )

    dispatch(make_dispatcher(fs), blocks)

    assert fs.files["a.txt"] == "second"
    assert fs.writes == ["a.txt", "a.txt"]


def test_failed_block_does_not_halt_siblings():
    fs = MemoryFileSystem({"a.py": "a = 1\n", "b.py": "b = 1\n"})
    runner = ScriptedShellRunner({"false": ([], 1)})
    blocks = parse_response(
        patch_block("a.py", "missing", "x")
        + "<shell>false</shell>"
        + patch_block("b.py", "b = 1", "b = 2")
    )

    outcomes = dispatch(make_dispatcher(fs, runner), blocks)

    assert [o.status for o in outcomes] == [
        OutcomeStatus.PATCH_MISMATCH,
        OutcomeStatus.SHELL_ERROR,
        OutcomeStatus.SUCCESS,
    ]
    assert fs.files == {"a.py": "a = 1\n", "b.py": "b = 2\n"}
    assert outcomes[0].mismatch.current_content == "a = 1\n"


def test_shell_commands_run_in_arrival_order():
    runner = ScriptedShellRunner({"one": (["1\n", "1\n"], 0), "two": (["2\n"], 0)})
    blocks = parse_response("<shell>one</shell><shell>two</shell>")

    outcomes = dispatch(make_dispatcher(MemoryFileSystem(), runner), blocks)

    assert [command for command, _ in runner.commands] == ["one", "two"]
    assert [o.output for o in outcomes] == ["1\n1\n", "2\n"]


def test_successful_edit_carries_a_diff():
    fs = MemoryFileSystem({"a.py": "a = 1\nb = 2\n"})
    outcome = dispatch(make_dispatcher(fs), parse_response(patch_block("a.py", "b = 2", "b = 3")))[0]

    assert outcome.diff.lines_added == 1
    assert outcome.diff.lines_removed == 1
    assert "+b = 3" in outcome.diff.unified_diff


def test_incomplete_blocks_are_refused():
    dispatcher = make_dispatcher(MemoryFileSystem())

    async def scenario():
        dispatcher.submit(ShellBlock(block_id=0, is_complete=False, command="ls"))

    with pytest.raises(ValueError, match="not complete"):
        asyncio.run(scenario())


def test_thinking_is_not_dispatched():
    dispatcher = make_dispatcher(MemoryFileSystem())

    async def scenario():
        return dispatcher.submit(ThinkingBlock(block_id=0, is_complete=True, text="plan"))

    assert asyncio.run(scenario()) is None
    assert dispatcher.pending == 0


def test_rejected_block_never_touches_the_filesystem():
    fs = MemoryFileSystem({"a.py": "a\n"})
    dispatcher = make_dispatcher(fs)
    block = FileBlock(block_id=2, is_complete=True, path="a.py", raw_type="create", content="b\n")

    async def scenario():
        dispatcher.submit(block, StructuralValidationError("Missing <thinking> block", 2))
        return await dispatcher.drain()

    outcome = asyncio.run(scenario())[0]

    assert outcome.status == OutcomeStatus.INVALID
    assert fs.writes == []


def test_invalid_file_block_is_reported():
    fs = MemoryFileSystem({"a.py": "a\n"})
    outcome = dispatch(make_dispatcher(fs), parse_response('<file path="a.py" type="patch"><search>a</search></file>'))[0]

    assert outcome.status == OutcomeStatus.INVALID
    assert "<replace>" in outcome.error


def test_outcomes_reach_the_projector():
    projector = RecordingProjector()
    fs = MemoryFileSystem()
    dispatch(make_dispatcher(fs, projector=projector), parse_response('<file path="a" type="create">x</file>'))

    assert [o.path for o in projector.outcomes] == ["a"]


def test_cancel_stops_running_commands():
    runner = ScriptedShellRunner({"npm install": ([HANG], 0)})
    fs = MemoryFileSystem()
    dispatcher = make_dispatcher(fs, runner)
    blocks = parse_response("<shell>npm install</shell>" + '<file path="a" type="create">x</file>')

    async def scenario():
        for block in blocks:
            dispatcher.submit(block)
        for _ in range(5):
            await asyncio.sleep(0)
        assert dispatcher.running_command == "npm install"
        await dispatcher.cancel()
        return await dispatcher.drain()

    outcomes = asyncio.run(scenario())

    assert outcomes[0].status == OutcomeStatus.CANCELLED
    assert outcomes[1].status == OutcomeStatus.SUCCESS
    assert runner.cancelled == 1


def test_path_key_normalizes_equivalent_paths():
    assert path_key("./src/a.py") == path_key("src//a.py") == path_key("src\\a.py")


@pytest.mark.parametrize("max_bytes", [5_000_000, 4])
def test_create_overwrites_an_unreadable_file(tmp_path, max_bytes):
    (tmp_path / "logo.txt").write_bytes(b"\xff\xfe\x00binary")
    local_fs = LocalFileSystem(tmp_path, max_bytes=max_bytes)

    outcome = dispatch(
        make_dispatcher(local_fs), parse_response('<file path="logo.txt" type="create">hello\n</file>')
    )[0]

    assert outcome.status == OutcomeStatus.SUCCESS
    assert (tmp_path / "logo.txt").read_bytes() == b"hello\n"
    assert outcome.diff.lines_added == 1


def test_patch_on_an_unreadable_file_is_an_error(tmp_path):
    (tmp_path / "logo.txt").write_bytes(b"\xff\xfe\x00binary")

    outcome = dispatch(
        make_dispatcher(LocalFileSystem(tmp_path)), parse_response(patch_block("logo.txt", "binary", "text"))
    )[0]

    assert outcome.status == OutcomeStatus.ERROR
    assert (tmp_path / "logo.txt").read_bytes() == b"\xff\xfe\x00binary"


def test_failed_outcome_refuses_blocks_that_are_never_dispatched():
    with pytest.raises(TypeError, match="not dispatched"):
        _failed(ThinkingBlock(block_id=3, is_complete=True, text="t"), OutcomeStatus.ERROR, "x")
