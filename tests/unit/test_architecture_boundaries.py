import ast
from pathlib import Path

import pytest


def _imports(py_file: Path):
    tree = ast.parse(py_file.read_text(encoding="utf-8"), filename=str(py_file))
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                yield node.lineno, alias.name
        elif isinstance(node, ast.ImportFrom):
            yield node.lineno, node.module or ""


@pytest.mark.parametrize(
    "layer, forbidden",
    [
        ("pipeline", ("strmthumb.ui", "strmthumb.main", "fastapi", "typer")),
        ("domain", ("strmthumb.infrastructure", "strmthumb.pipeline", "strmthumb.ui")),
        ("infrastructure", ("strmthumb.ui", "strmthumb.main")),
    ],
)
def test_layer_import_boundaries(layer, forbidden):
    """Inner layers must not import outer layers."""
    repo_root = Path(__file__).resolve().parents[2]
    layer_dir = repo_root / "strmthumb" / layer

    violations = []
    for py_file in layer_dir.rglob("*.py"):
        rel_path = py_file.relative_to(repo_root)
        for lineno, name in _imports(py_file):
            if any(name == prefix or name.startswith(prefix + ".") for prefix in forbidden):
                violations.append(f"{rel_path}:{lineno} imports {name}")

    assert not violations, f"{layer} layer has forbidden imports:\n" + "\n".join(violations)
