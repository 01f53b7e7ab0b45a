"""Tests for the fungi CLI."""

from typer.testing import CliRunner

from fungi.cli import app

runner = CliRunner()


def test_ask_with_default_program():
    result = runner.invoke(app, ["ask", "hello there"])
    assert result.exit_code == 0
    assert "Hello, Fediverse user!" in result.output


def test_ask_with_program_file(tmp_path):
    program = tmp_path / "bot.fungi"
    program.write_text('ON "spore" RESPOND "puff";')
    result = runner.invoke(app, ["ask", "a spore!", "--program", str(program)])
    assert result.exit_code == 0
    assert "puff" in result.output


def test_check_lists_rules(tmp_path):
    program = tmp_path / "bot.fungi"
    program.write_text('ON "a" RESPOND "b"; ON "c" RESPOND "d";')
    result = runner.invoke(app, ["check", str(program)])
    assert result.exit_code == 0
    assert "2 rules" in result.output


def test_check_malformed(tmp_path):
    program = tmp_path / "bot.fungi"
    program.write_text("not a program")
    result = runner.invoke(app, ["check", str(program)])
    assert result.exit_code == 1
    assert "Malformed" in result.output
