import pytest

from rag_orchestrator.interface.cli.main import build_parser, run


def test_parser_ask_options():
    args = build_parser().parse_args(
        ["ask", "--question", "What is JS?", "--conversation-id", "c1", "--k", "5", "--cot", "--stream"]
    )
    assert (args.command, args.question, args.conversation_id, args.k) == ("ask", "What is JS?", "c1", 5)
    assert args.cot and args.stream


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_parser_serve_defaults():
    args = build_parser().parse_args(["serve"])
    assert (args.host, args.port) == ("127.0.0.1", 8000)


async def test_ask_prints_answer(container, capsys):
    code = await run(build_parser().parse_args(["ask", "--question", "What is JS?"]), container)

    out = capsys.readouterr().out
    assert code == 0
    assert "JavaScript is a language." in out
    assert "conversation:" in out


async def test_ask_stream(container, capsys):
    code = await run(
        build_parser().parse_args(["ask", "--question", "hi", "--stream", "--conversation-id", "c9"]),
        container,
    )
    out = capsys.readouterr().out
    assert code == 0
    assert "JavaScript is a language." in out
    assert "conversation: c9" in out


async def test_ask_failure_exit_code(container, inference, capsys):
    inference.fail = True
    code = await run(build_parser().parse_args(["ask", "--question", "hi"]), container)
    assert code == 1
    assert "generation_failed" in capsys.readouterr().err


async def test_ingest_and_count(container, tmp_path, capsys):
    path = tmp_path / "notes.txt"
    path.write_text("JavaScript is a language. It runs in browsers.", encoding="utf-8")

    assert await run(build_parser().parse_args(["ingest", "--path", str(path)]), container) == 0
    assert await run(build_parser().parse_args(["count"]), container) == 0

    out = capsys.readouterr().out
    assert "added 1 document(s)" in out
    assert out.strip().endswith("1")


async def test_conversations_listing_and_clear(container, capsys):
    await run(build_parser().parse_args(["ask", "--question", "hello", "--conversation-id", "c1"]), container)
    capsys.readouterr()

    await run(build_parser().parse_args(["conversations"]), container)
    assert "c1" in capsys.readouterr().out

    await run(build_parser().parse_args(["conversations", "--clear"]), container)
    assert "deleted 1 conversation(s)" in capsys.readouterr().out


async def test_warmup_reports_each_model(container, capsys):
    assert await run(build_parser().parse_args(["warmup"]), container) == 0
    assert "llama3.2: ok" in capsys.readouterr().out


async def test_index_outage_on_count_is_reported(container, index, capsys):
    index.down = True
    assert await run(build_parser().parse_args(["count"]), container) == 1
    assert "index_unavailable" in capsys.readouterr().err
