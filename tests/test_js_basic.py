"""
Parameterized pytest tests for JavaScript files.

Each .js file in tests/basic/ is evaluated in a fresh context and should
complete without throwing. Files may call the host function
``assert(condition, message)``.
"""

from pathlib import Path

import pytest

from jsbridge import EvalMode, Runtime


def get_basic_test_files():
    """Discover all .js files in tests/basic/ directory."""
    basic_dir = Path(__file__).parent / "basic"
    if not basic_dir.exists():
        return []
    return [(f.name, f) for f in sorted(basic_dir.glob("*.js"))]


def host_assert(ctx, this, args):
    if not args or not args[0].is_bool():
        return ctx.throw_error("assert expects a boolean", "TypeError")
    if not args[0].as_bool():
        message = args[1].to_string() if len(args) > 1 else "assertion failed"
        return ctx.throw_error(message)
    return None


@pytest.mark.parametrize(
    "name,path",
    get_basic_test_files(),
    ids=lambda x: x if isinstance(x, str) else None,
)
def test_basic_js(name: str, path: Path):
    """Run a basic JavaScript test file."""
    source = path.read_text(encoding="utf-8")
    mode = EvalMode.MODULE if name.endswith(".mjs.js") else EvalMode.GLOBAL
    with Runtime(time_limit=5.0) as runtime:
        with runtime.new_context() as ctx:
            with ctx.globals() as global_obj:
                global_obj.set("assert", ctx.function(host_assert, "assert", 2))
            ctx.eval(source, mode, name).free()
