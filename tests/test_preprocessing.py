from content_embeddings.chunking import needs_preprocessing, preprocess_content


def test_strips_html_and_drops_scripts():
    html = "<div><p>Hello <b>world</b></p><script>alert('x')</script><img src='a.png'></div>"

    assert preprocess_content(html) == "Hello world"


def test_strips_markdown_syntax():
    markdown = "# Title\n\nSome **bold** and [a link](http://example.com).\n- item one\n- item two"

    assert preprocess_content(markdown) == "Title\n\nSome bold and a link.\nitem one\nitem two"


def test_normalizes_whitespace():
    assert preprocess_content("a   b\n\n\n\nc  ") == "a b\n\nc"


def test_plain_text_is_unchanged():
    text = "Plain prose without any markup."

    assert not needs_preprocessing(text)
    assert preprocess_content(text) == text


def test_detection():
    assert needs_preprocessing("<p>x</p>")
    assert needs_preprocessing("**bold**")
    assert needs_preprocessing("> quoted")


def test_steps_can_be_disabled():
    assert preprocess_content("**bold**", strip_markdown=False) == "**bold**"
    assert preprocess_content("a  b", normalize_whitespace=False) == "a  b"


def test_empty_input():
    assert preprocess_content("") == ""
