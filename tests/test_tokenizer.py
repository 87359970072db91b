from patchstream.services.stream_parser import BlockStreamParser, parse_response
from patchstream.services.tokenizer import BlockTokenizer, TagEventKind, TokenizerState, parse_attributes

RESPONSE = (
    "Sure, here it is.\n"
    "<thinking>Render the list with <ul> and bump x.</thinking>\n"
    '<file path="src/List.tsx" type="create">\n'
    "export const List = () => (\n"
    '  <ul className="items">{items.map((i) => <li key={i}>{i}</li>)}</ul>\n'
    ");\n"
    "const big = a </file b;\n"
    "</file>\n"
    '<file path="src/state.ts" type="patch">\n'
    "<search>\n"
    "const x = 1 < 2;\n"
    "</search>\n"
    "<replace>\n"
    "const x = 2 < 3;\n"
    "</replace>\n"
    "</file>\n"
    "<shell>npm test</shell>\n"
    "<explanation>Done.</explanation>\n"
)


def _parse_in_pieces(text, cuts):
    parser = BlockStreamParser()
    start = 0
    for cut in list(cuts) + [len(text)]:
        parser.feed(text[start:cut])
        start = cut
    parser.finish()
    return parser.blocks()


def test_open_text_close_events():
    tokenizer = BlockTokenizer()
    events = tokenizer.consume("<thinking>hi</thinking>")

    assert [e.kind for e in events] == [TagEventKind.OPEN, TagEventKind.TEXT, TagEventKind.CLOSE]
    assert events[1].text == "hi"
    assert tokenizer.state == TokenizerState.OUTSIDE


def test_every_single_split_gives_the_same_blocks():
    expected = parse_response(RESPONSE)
    assert len(expected) == 5

    for cut in range(1, len(RESPONSE)):
        assert _parse_in_pieces(RESPONSE, [cut]) == expected, f"split at {cut}"


def test_character_by_character_matches_one_shot():
    assert _parse_in_pieces(RESPONSE, range(1, len(RESPONSE))) == parse_response(RESPONSE)


def test_markup_inside_file_body_is_literal():
    blocks = parse_response(RESPONSE)
    created = blocks[1]

    assert created.path == "src/List.tsx"
    assert '<li key={i}>{i}</li>' in created.content
    assert created.content.endswith("const big = a </file b;\n")
    assert blocks[0].text == "Render the list with <ul> and bump x."


def test_partial_tag_is_held_back_until_resolved():
    tokenizer = BlockTokenizer()
    first = tokenizer.consume("<thinking>a<")

    assert [e.kind for e in first] == [TagEventKind.OPEN, TagEventKind.TEXT]
    assert first[1].text == "a"

    second = tokenizer.consume("/thin")
    assert second == []

    third = tokenizer.consume("king>")
    assert [e.kind for e in third] == [TagEventKind.CLOSE]


def test_rejected_candidate_is_emitted_as_text():
    tokenizer = BlockTokenizer()
    tokenizer.consume('<file path="a.html" type="create"><')
    events = tokenizer.consume("div>")

    assert "".join(e.text for e in events if e.kind == TagEventKind.TEXT) == "<div>"


def test_finish_flushes_partial_tag_into_open_body():
    tokenizer = BlockTokenizer()
    tokenizer.consume('<file path="a.txt" type="create">x </fi')
    events = tokenizer.finish()

    assert [(e.kind, e.text) for e in events] == [(TagEventKind.TEXT, "</fi")]
    assert tokenizer.open_tags == ["file"]


def test_search_is_only_a_tag_inside_patch_files():
    blocks = parse_response('<thinking>t</thinking><file path="a" type="create"><search>x</search></file>')

    assert blocks[1].content == "<search>x</search>"
    assert blocks[1].search is None


def test_text_outside_blocks_and_unknown_tags_are_ignored():
    tokenizer = BlockTokenizer()
    events = tokenizer.consume("hello <b>bold</b> <thinking>t</thinking> bye")

    opens = [e for e in events if e.kind == TagEventKind.OPEN]
    assert [(e.name, e.node_id) for e in opens] == [("thinking", 0)]


def test_overlong_candidate_tag_is_literal():
    tokenizer = BlockTokenizer(max_tag_length=16)
    events = tokenizer.consume('<file path="a/very/long/path.txt" type="create">x</file>')
    events += tokenizer.finish()

    assert events == []


def test_node_ids_follow_opening_order():
    tokenizer = BlockTokenizer()
    events = tokenizer.consume(
        '<file path="a" type="patch"><search>s</search><replace>r</replace></file>'
        "<explanation>e</explanation>"
    )
    opens = [(e.name, e.node_id, e.parent_id) for e in events if e.kind == TagEventKind.OPEN]

    assert opens == [("file", 0, None), ("search", 1, 0), ("replace", 2, 0), ("explanation", 3, None)]


def test_parse_attributes_accepts_both_quote_styles():
    assert parse_attributes(""" path='a b.py' type="patch" """) == {"path": "a b.py", "type": "patch"}


def test_reset_discards_state():
    tokenizer = BlockTokenizer()
    tokenizer.consume("<thinking>half")
    tokenizer.reset()

    assert tokenizer.open_tags == []
    assert tokenizer.consumed == 0
    events = tokenizer.consume("<shell>ls</shell>")
    assert events[0].node_id == 0
