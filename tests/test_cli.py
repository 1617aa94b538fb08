"""Tests for the command line runner and demo."""

from jsbridge.__main__ import main


class TestDemo:
    """The built-in demo."""

    def test_demo_output(self, capsys):
        """The demo prints each section in order."""
        assert main([]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "Hello world! 2 ** 8 = 256."
        assert "198" in lines
        assert str(128 ** 16) in lines
        assert "False" in lines
        assert lines.count("A got called!") == 5
        assert lines.count("B got called!") == 5
        assert lines.index("Globals:") > lines.index("A got called!")

    def test_demo_alternates_calls(self, capsys):
        """A and B are called in alternation."""
        main([])
        calls = [line for line in capsys.readouterr().out.splitlines() if line.endswith("got called!")]
        assert calls == ["A got called!", "B got called!"] * 5

    def test_demo_globals(self, capsys):
        """The globals listing shows the demo's own bindings."""
        main([])
        out = capsys.readouterr().out
        listing = out.split("Globals:\n", 1)[1]
        assert "'HELLO': world" in listing
        assert "'TEST': false" in listing
        assert "'Deaf': " in listing
        assert "'Math'" not in listing

    def test_demo_bytecode_function(self, capsys):
        """The function loaded from bytecode returns 1."""
        main([])
        lines = capsys.readouterr().out.splitlines()
        assert lines[lines.index("undefined") + 1] == "1"


class TestRunner:
    """Evaluating source from the command line."""

    def test_expression(self, capsys):
        """A positional expression is evaluated and printed."""
        assert main(["--no-demo", "1", "+", "2"]) == 0
        assert capsys.readouterr().out.strip() == "3"

    def test_object_result(self, capsys):
        """An object result is listed property by property."""
        assert main(["--no-demo", "({a: 1, b: 'two'})"]) == 0
        assert capsys.readouterr().out.splitlines() == ["Object:", "'a': 1", "'b': two"]

    def test_console_log(self, capsys):
        """console.log is available to scripts."""
        main(["--no-demo", "console.log('hi', 1 + 1)"])
        assert capsys.readouterr().out.splitlines()[0] == "hi 2"

    def test_uncaught_exception(self, capsys):
        """An uncaught throw prints the cause and exits with 1."""
        assert main(["--no-demo", "throw new Error('bad')"]) == 1
        assert "Error: bad" in capsys.readouterr().out

    def test_syntax_error(self, capsys):
        """A syntax error exits with 1."""
        assert main(["--no-demo", "var = ;"]) == 1
        assert "SyntaxError" in capsys.readouterr().out

    def test_module_flag(self, capsys):
        """--module evaluates as a module."""
        assert main(["--no-demo", "--module", "console.log(typeof this)"]) == 0
        assert capsys.readouterr().out.splitlines()[0] == "undefined"

    def test_time_limit(self, capsys):
        """--time-limit interrupts runaway scripts."""
        assert main(["--no-demo", "--time-limit", "0.2", "for (;;) {}"]) == 1
        assert "InternalError: interrupted" in capsys.readouterr().out

    def test_compile_and_load(self, tmp_path, capsys):
        """--compile writes bytecode that --load runs."""
        out = tmp_path / "prog.jsbc"
        assert main(["--compile", str(out), "globalThis.answer = 42"]) == 0
        assert out.read_bytes().startswith(b"JSBC")
        assert capsys.readouterr().out.startswith("Wrote ")

        assert main(["--no-demo", "--load", str(out), "answer + 1"]) == 0
        assert capsys.readouterr().out.splitlines() == ["42", "43"]

    def test_load_missing_file(self, tmp_path, capsys):
        """A missing bytecode file exits with 1."""
        assert main(["--no-demo", "--load", str(tmp_path / "missing.jsbc")]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_load_garbage(self, tmp_path, capsys):
        """A corrupt bytecode file is reported."""
        path = tmp_path / "bad.jsbc"
        path.write_bytes(b"not bytecode")
        assert main(["--no-demo", "--load", str(path)]) == 1
        assert "not a serialized program" in capsys.readouterr().out
