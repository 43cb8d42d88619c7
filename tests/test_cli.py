"""
End-to-end tests for the xsc command: switches in, files and messages out.
"""

import io
import struct
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.context import COPYRIGHT_BANNER, VERSION_BANNER, Context
from cli import configure_logging, main
from cli.args import resolve, scan_args
from cli.driver import SYNTAX_OK, Driver, State, StateError
from compiler import Bytecode


HELLO = '''\
func greet(name) {
    return "hello, " + name;
}
var msg = greet("world");
'''

BROKEN = "var x = ;\n"


@pytest.fixture(autouse=True)
def quiet_logging():
    yield
    configure_logging(False)


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "hello.xs").write_text(HELLO)
    (tmp_path / "broken.xs").write_text(BROKEN)
    return tmp_path


def xsc(*args):
    return main(["xsc", *args])


class TestInformational:

    def test_no_arguments(self, capsys):
        assert xsc() == 1
        err = capsys.readouterr().err
        assert "xsc: No program file given." in err
        assert "Usage: xsc [switches] programfile" in err

    def test_version(self, workdir, capsys):
        assert xsc("--version", "missing.xs") == 0
        out = capsys.readouterr().out
        assert out == VERSION_BANNER + "\n"

    def test_copyright(self, workdir, capsys):
        assert xsc("--copyright", "hello.xs") == 0
        assert capsys.readouterr().out == COPYRIGHT_BANNER + "\n"
        assert not (workdir / "hello.mrb").exists()

    def test_progname_from_argv(self, capsys):
        assert main(["/usr/local/bin/mycc"]) == 1
        assert "Usage: mycc" in capsys.readouterr().err


class TestBinaryOutput:

    def test_derived_output(self, workdir):
        assert xsc("hello.xs") == 0
        data = (workdir / "hello.mrb").read_bytes()
        assert data[:4] == Bytecode.MAGIC
        assert Bytecode.deserialize(data).globals == {"greet": 0, "msg": 1}

    def test_verbose_debug(self, workdir, capsys):
        assert xsc("-v", "-g", "hello.xs") == 0
        out = capsys.readouterr().out

        assert out.count(VERSION_BANNER) == 1
        assert out.index(VERSION_BANNER) < out.index("Program")
        assert "=== XScript Bytecode ===" in out

        data = (workdir / "hello.mrb").read_bytes()
        assert struct.unpack_from('<H', data, 6)[0] & Bytecode.FLAG_DEBUG_INFO

    def test_written_module_matches_compile(self, workdir):
        assert xsc("-g", "-oout.mrb", "hello.xs") == 0
        with Context() as ctx:
            expected = ctx.compile(HELLO)
            assert ctx.load((workdir / "out.mrb").read_bytes()) == expected

    def test_output_to_stdout(self, workdir, capsysbinary):
        assert xsc("-o-", "hello.xs") == 0
        assert capsysbinary.readouterr().out[:4] == Bytecode.MAGIC
        assert not (workdir / "hello.mrb").exists()

    def test_stdin_to_stdout(self, monkeypatch, capsysbinary):
        monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(HELLO.encode())))
        assert xsc("-") == 0
        assert capsysbinary.readouterr().out[:4] == Bytecode.MAGIC


class TestCSourceOutput:

    def test_derived_output(self, workdir):
        assert xsc("-Binit_hello", "hello.xs") == 0
        text = (workdir / "hello.c").read_text()
        assert "void\ninit_hello(struct xs_state *xs)" in text
        assert not (workdir / "hello.mrb").exists()

    def test_invalid_symbol_removes_output(self, workdir, capsys):
        assert xsc("-B1bad", "hello.xs") == 1
        assert capsys.readouterr().err == "1bad: Invalid C language symbol name\n"
        assert not (workdir / "hello.c").exists()


class TestSyntaxCheck:

    def test_ok(self, workdir, capsys):
        assert xsc("-c", "hello.xs") == 0
        assert capsys.readouterr().out == SYNTAX_OK + "\n"
        assert not (workdir / "hello.mrb").exists()

    def test_ignores_output_switches(self, workdir):
        assert xsc("-c", "-Bmain", "-oout.c", "hello.xs") == 0
        assert not (workdir / "out.c").exists()
        assert not (workdir / "hello.c").exists()

    def test_error(self, workdir, capsys):
        assert xsc("-c", "broken.xs") == 1
        captured = capsys.readouterr()
        assert SYNTAX_OK not in captured.out
        assert captured.err.startswith("broken.xs:1:9: ")
        assert not (workdir / "broken.mrb").exists()

    def test_stdin(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(b"var x = 1;")))
        assert xsc("-c", "-") == 0
        assert capsys.readouterr().out == SYNTAX_OK + "\n"


class TestFailures:

    def test_syntax_error_removes_output(self, workdir, capsys):
        assert xsc("broken.xs") == 1
        assert "broken.xs:1:9" in capsys.readouterr().err
        assert not (workdir / "broken.mrb").exists()

    def test_missing_program_file(self, workdir, capsys):
        assert xsc("missing.xs") == 1
        err = capsys.readouterr().err
        assert "xsc: Cannot open program file. (missing.xs)" in err
        assert "Usage:" in err

    def test_duplicate_output_creates_nothing(self, workdir, capsys):
        assert xsc("-oa.mrb", "-ob.mrb", "hello.xs") == 1
        assert "An output file is already specified. (a.mrb)" in capsys.readouterr().err
        assert not (workdir / "a.mrb").exists()
        assert not (workdir / "b.mrb").exists()

    def test_unwritable_output(self, workdir, capsys):
        assert xsc("-onodir/out.mrb", "hello.xs") == 1
        assert capsys.readouterr().err == "xsc: Cannot open output file. (nodir/out.mrb)\n"

    def test_invalid_utf8(self, workdir, capsys):
        (workdir / "latin1.xs").write_bytes(b'var s = "caf\xe9";\n')
        assert xsc("latin1.xs") == 1
        assert "latin1.xs" in capsys.readouterr().err
        assert not (workdir / "latin1.mrb").exists()

    def test_deeply_nested_program(self, workdir, capsys):
        (workdir / "deep.xs").write_text("var x = " + "(" * 1500 + "1" + ")" * 1500 + ";\n")
        assert xsc("deep.xs") == 1
        assert capsys.readouterr().err == "deep.xs: program is nested too deeply\n"
        assert not (workdir / "deep.mrb").exists()


class TestDriver:

    def run_driver(self, args):
        out, err = io.StringIO(), io.StringIO()
        with Context() as ctx, resolve(scan_args(args)) as config:
            driver = Driver(ctx, config, stdout=out, stderr=err)
            code = driver.run()
        return driver, code, out.getvalue(), err.getvalue()

    def test_done(self, workdir):
        driver, code, _, _ = self.run_driver(["hello.xs"])
        assert (code, driver.state) == (0, State.DONE)
        assert driver.unit is not None

    def test_syntax_only(self, workdir):
        driver, code, out, _ = self.run_driver(["-c", "hello.xs"])
        assert (code, driver.state) == (0, State.SYNTAX_ONLY_DONE)
        assert out == SYNTAX_OK + "\n"

    def test_failed(self, workdir):
        driver, code, out, err = self.run_driver(["broken.xs"])
        assert (code, driver.state) == (1, State.FAILED)
        assert out == ""
        assert err.startswith("broken.xs:")

    def test_illegal_transition(self, workdir):
        with Context() as ctx, resolve(scan_args(["hello.xs"])) as config:
            driver = Driver(ctx, config)
            with pytest.raises(StateError):
                driver._transition(State.DONE)
            assert driver.state is State.IDLE

    def test_stdout_text_precedes_module(self, workdir):
        out = io.TextIOWrapper(io.BytesIO(), encoding="utf-8")
        with Context(stdout=out) as ctx, resolve(scan_args(["-v", "-o-", "hello.xs"])) as config:
            assert Driver(ctx, config, stdout=out).run() == 0
        out.flush()
        raw = out.buffer.getvalue()
        assert raw.index(b"=== XScript Bytecode ===") < raw.index(Bytecode.MAGIC)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
