"""
Demo and command line runner for jsbridge.

Usage:
    python -m jsbridge [EXPRESSION ...]
    python -m jsbridge --no-demo --module 'export const x = 1; x'
    python -m jsbridge --compile out.jsbc 'globalThis.answer = 42'
    python -m jsbridge --no-demo --load out.jsbc 'answer'

Without --no-demo the demo runs first: template strings, numeric, BigInt,
BigDecimal and boolean expressions, host functions A and B called from a
loop, a function definition round-tripped through bytecode, and a listing of
the global bindings. Any positional arguments are then joined with spaces and
evaluated; an object result is listed property by property.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import Context, EvalMode, JSError, Runtime, Value

DEFINE_FUNCTION = """
(function(global) {
    global.Deaf = function() {
        return 1;
    };
})(this)
"""


def print_properties(title: str, obj: Value) -> None:
    """Print each own enumerable property of obj as 'name': value."""
    print(f"{title}:")
    for name in obj.property_names():
        with obj.get_by_atom(name.atom) as value:
            print(f"'{name}': {value}")


def host_a(ctx: Context, this: Value, args: List[Value]) -> Value:
    print("A got called!")
    return ctx.null()


def host_b(ctx: Context, this: Value, args: List[Value]) -> Value:
    print("B got called!")
    return ctx.null()


def console_log(ctx: Context, this: Value, args: List[Value]) -> Value:
    print(" ".join(str(arg) for arg in args))
    return ctx.undefined()


def run_demo(ctx: Context) -> None:
    with ctx.globals() as globals_:
        # Template strings
        with ctx.eval("`Hello world! 2 ** 8 = ${2 ** 8}.`") as result:
            print(result)
        print()

        # Bytecode round trip
        data = ctx.compile(DEFINE_FUNCTION, filename="<code>")
        with ctx.eval_binary(data) as result:
            print(result)
        with ctx.eval("Deaf()") as result:
            print(result.as_int64())

        # Numbers
        with ctx.eval("1 + 2 * 100 - 3") as result:
            print(result.as_int64())
        with ctx.eval("1 + 2 * 100 - 3 + Math.sin(10)") as result:
            print(result.as_float64())
        print()

        # BigInt
        with ctx.eval("128n ** 16n") as result:
            print(result.as_big_int())
        print()

        # BigDecimal
        with ctx.eval("128l ** 12l") as result:
            print(result.as_big_decimal())
        print()

        # Booleans
        with ctx.eval("false && true") as result:
            print(result.as_bool())
        print()

        # Host functions
        globals_.set("A", ctx.function(host_a, "A"))
        globals_.set("B", ctx.function(host_b, "B"))
        ctx.eval("for (let i = 0; i < 10; i++) { if (i % 2 === 0) A(); else B(); }").free()
        print()

        # Globals
        ctx.eval('HELLO = "world"; TEST = false;').free()
        print_properties("Globals", globals_)
        print()


def install_console(ctx: Context) -> None:
    with ctx.globals() as globals_:
        console = ctx.object()
        console.set("log", ctx.function(console_log, "log"))
        globals_.set("console", console)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jsbridge",
        description="Evaluate JavaScript in an embedded, isolated context.",
    )
    parser.add_argument("source", nargs="*", help="JavaScript source, joined with spaces")
    parser.add_argument("--module", action="store_true", help="evaluate the source as a module")
    parser.add_argument("--compile", metavar="OUT", help="compile the source to a bytecode file instead of running it")
    parser.add_argument("--load", metavar="FILE", help="run a bytecode file before the source")
    parser.add_argument("--filename", default="<input>", help="filename reported in stack traces")
    parser.add_argument("--time-limit", type=float, default=None, help="seconds per evaluation")
    parser.add_argument("--memory-limit", type=int, default=None, help="approximate memory limit in bytes")
    parser.add_argument("--no-demo", action="store_true", help="skip the built-in demo")
    parser.add_argument("-v", "--verbose", action="store_true", help="log engine lifecycle events")
    return parser


def run(args: argparse.Namespace, ctx: Context) -> None:
    mode = EvalMode.MODULE if args.module else EvalMode.GLOBAL
    source = " ".join(args.source)

    if args.compile:
        data = ctx.compile(source, mode, args.filename)
        Path(args.compile).write_bytes(data)
        print(f"Wrote {len(data)} bytes to {args.compile}")
        return

    install_console(ctx)
    if not args.no_demo:
        run_demo(ctx)

    if args.load:
        with ctx.eval_binary(Path(args.load).read_bytes()) as result:
            print(result)

    if not source:
        return

    with ctx.eval(source, mode, args.filename) as result:
        if result.is_object():
            print_properties("Object", result)
        else:
            print(result)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.compile and not args.source:
        parser.error("--compile needs source to compile")

    try:
        with Runtime(memory_limit=args.memory_limit, time_limit=args.time_limit) as runtime:
            with runtime.new_context() as ctx:
                run(args, ctx)
    except JSError as e:
        print(e.cause)
        print(e.stack)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
