from patchstream.models.blocks import EditKind, ExplanationBlock, FileBlock, ShellBlock, ThinkingBlock
from patchstream.models.operations import FileEditOperation
from patchstream.models.session import StreamStatus
from patchstream.services.accumulator import BlockAccumulator, strip_tag_padding
from patchstream.services.patch_resolver import PatchResolver
from patchstream.services.stream_parser import BlockStreamParser, parse_response
from patchstream.services.tokenizer import BlockTokenizer

CHUNK_1 = "<thinking>Add stat"
CHUNK_2 = 'e</thinking><file path="App.tsx" type="patch"><search>const x=1</search><replace>const x=2</replace></file>'
CHUNK_3 = "<explanation>done</explanation>"


def test_streamed_patch_scenario():
    parser = BlockStreamParser()

    first = parser.feed(CHUNK_1)
    assert first.completed == []
    assert parser.incomplete_thinking() == "Add stat"
    assert first.status.status == StreamStatus.THINKING
    assert first.status.thinking == "Add stat"

    second = parser.feed(CHUNK_2)
    thinking, patch = second.completed
    assert isinstance(thinking, ThinkingBlock)
    assert thinking.text == "Add state"
    assert thinking.is_complete
    assert isinstance(patch, FileBlock)
    assert patch.is_complete
    assert patch.edit_kind == EditKind.PATCH
    assert (patch.path, patch.search, patch.replace) == ("App.tsx", "const x=1", "const x=2")

    third = parser.feed(CHUNK_3)
    assert len(third.completed) == 1
    assert isinstance(third.completed[0], ExplanationBlock)
    assert third.completed[0].text == "done"

    result = PatchResolver().apply(FileEditOperation.from_block(patch), "const x=1;")
    assert result == "const x=2;"


def test_complete_blocks_are_emitted_once():
    parser = BlockStreamParser()
    completed = parser.feed(CHUNK_1 + CHUNK_2 + CHUNK_3).completed
    completed += parser.finish().completed
    completed += parser.feed("").completed

    assert [block.block_id for block in completed] == [0, 1, 4]


def test_repeated_close_event_does_not_re_emit():
    tokenizer = BlockTokenizer()
    accumulator = BlockAccumulator()
    events = tokenizer.consume("<shell>ls</shell>")

    assert len(accumulator.feed(events).completed) == 1
    assert accumulator.feed(events[-1:]).completed == []
    assert accumulator.has_emitted(0)


def test_completed_blocks_follow_opening_order():
    blocks = parse_response(
        "<thinking>plan</thinking><shell>npm test</shell>"
        '<file path="a.txt" type="create">a</file><explanation>e</explanation>'
    )

    assert [type(block) for block in blocks] == [ThinkingBlock, ShellBlock, FileBlock, ExplanationBlock]
    assert [block.block_id for block in blocks] == sorted(block.block_id for block in blocks)


def test_create_content_keeps_body_but_drops_tag_padding():
    blocks = parse_response('<file path="main.py" type="create">\n  print(1)\n\n  </file>')

    assert blocks[0].content == "  print(1)\n\n"


def test_patch_bodies_on_their_own_lines_keep_their_line_breaks():
    blocks = parse_response(
        '<file path="a.py" type="patch">\n'
        "  <search>\n"
        "    x = 1\n"
        "  </search>\n"
        "  <replace>\n"
        "\n"
        "    x = 2\n"
        "  </replace>\n"
        "</file>"
    )

    assert blocks[0].search == "    x = 1\n"
    assert blocks[0].replace == "\n    x = 2\n"


def test_inline_patch_bodies_are_verbatim():
    blocks = parse_response('<file path="a.py" type="patch"><search>x = 1\n</search><replace> x = 5</replace></file>')

    assert blocks[0].search == "x = 1\n"
    assert blocks[0].replace == " x = 5"


def test_trailing_line_break_makes_the_search_unique():
    block = parse_response('<file path="a.py" type="patch"><search>x = 1\n</search><replace>x = 5\n</replace></file>')[0]

    result = PatchResolver().apply(FileEditOperation.from_block(block), "x = 1\nx = 10\n")

    assert result == "x = 5\nx = 10\n"


def test_patch_can_add_and_remove_edge_line_breaks():
    added = parse_response('<file path="a" type="patch"><search>end\n</search><replace>end\n\n</replace></file>')[0]
    removed = parse_response('<file path="a" type="patch"><search>\nend\n\n</search><replace>\nend\n</replace></file>')[0]

    assert PatchResolver().apply(FileEditOperation.from_block(added), "end\n") == "end\n\n"
    assert PatchResolver().apply(FileEditOperation.from_block(removed), "end\n\n") == "end\n"


def test_empty_replace_is_present_not_missing():
    blocks = parse_response('<file path="a.py" type="patch"><search>x</search><replace></replace></file>')

    assert blocks[0].replace == ""


def test_strip_tag_padding_only_unwraps_bodies_on_their_own_lines():
    assert strip_tag_padding("const x=1") == "const x=1"
    assert strip_tag_padding("line\n") == "line\n"
    assert strip_tag_padding("\nline") == "\nline"
    assert strip_tag_padding("\r\nline\r\n") == "line\r\n"
    assert strip_tag_padding("\n  a\n    ") == "  a\n"
    assert strip_tag_padding("\n  ") == ""


def test_unclosed_block_stays_open_after_finish():
    parser = BlockStreamParser()
    parser.feed("<thinking>a</thinking><shell>npm i")
    update = parser.finish()

    assert update.completed == []
    assert parser.has_incomplete_blocks()
    assert parser.incomplete_shell() == "npm i"
    assert parser.status().status == StreamStatus.SHELL
    assert [block.block_id for block in parser.open_blocks()] == [1]


def test_status_while_writing_and_after_finish():
    parser = BlockStreamParser()
    parser.feed('<thinking>t</thinking><file path="src/a.py" type="create">x')

    assert parser.status().status == StreamStatus.WRITING
    assert parser.status().current_file == "src/a.py"
    assert parser.incomplete_file().content == "x"

    parser.feed("</file>")
    assert parser.status().status == StreamStatus.IDLE
    parser.finish()
    assert parser.status().status == StreamStatus.COMPLETE


def test_unknown_file_type_has_no_edit_kind():
    block = parse_response('<file path="a.txt" type="delete">x</file>')[0]

    assert block.edit_kind is None
    assert block.raw_type == "delete"


def test_repeated_search_child_is_ignored():
    block = parse_response(
        '<file path="a" type="patch"><search>one</search><search>two</search><replace>r</replace></file>'
    )[0]

    assert block.search == "one"
    assert block.replace == "r"


def test_reset_discards_buffer_and_blocks():
    parser = BlockStreamParser()
    parser.feed(CHUNK_1)
    parser.reset()

    assert parser.buffer == ""
    assert parser.blocks() == []
    assert parser.status().status == StreamStatus.IDLE


def test_buffer_is_cumulative():
    parser = BlockStreamParser()
    parser.feed(CHUNK_1)
    parser.feed(CHUNK_2)

    assert parser.buffer == CHUNK_1 + CHUNK_2
