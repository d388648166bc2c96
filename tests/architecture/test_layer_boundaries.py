"""
Layer boundary contract.

1. ledger_kernel/** may NOT import ledger_services or ledger_engines.
   The kernel never depends upward.

2. ledger_engines/** are pure: no SQLAlchemy, no sessions, no ORM models,
   no services, no config.

3. Selectors are read-only: they never call add, flush, commit or delete.

These tests read source code via AST; they cannot break anything.
"""

import ast
import glob
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted(Path(p) for p in glob.glob(str(ROOT / package / "**" / "*.py"), recursive=True))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for path in _python_files(package):
        for lineno, module in _extract_imports(path):
            if module.startswith(forbidden):
                found.append(f"{path.relative_to(ROOT)}:{lineno} imports {module}")
    return found


class TestKernelNoUpwardDependencies:

    def test_kernel_does_not_import_services_or_engines(self):
        assert _violations("ledger_kernel", ("ledger_services", "ledger_engines")) == []

    def test_config_does_not_import_services_or_engines(self):
        assert _violations("ledger_config", ("ledger_services", "ledger_engines")) == []


class TestEnginePurity:

    @pytest.mark.parametrize(
        "forbidden",
        [
            "sqlalchemy",
            "ledger_services",
            "ledger_config",
            "ledger_kernel.models",
            "ledger_kernel.services",
            "ledger_kernel.selectors",
            "ledger_kernel.db.engine",
        ],
    )
    def test_engines_stay_pure(self, forbidden):
        assert _violations("ledger_engines", (forbidden,)) == []


class TestSelectorsAreReadOnly:

    def test_selectors_never_write(self):
        writes = []
        for path in _python_files("ledger_kernel/selectors"):
            tree = ast.parse(path.read_text(), filename=str(path))
            for node in ast.walk(tree):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Attribute)
                    and node.func.attr in {"add", "add_all", "flush", "commit", "delete"}
                ):
                    writes.append(f"{path.name}:{node.lineno} calls .{node.func.attr}()")
        assert writes == []


class TestNoBareExcept:

    @pytest.mark.parametrize("package", ["ledger_kernel", "ledger_engines", "ledger_services", "ledger_config"])
    def test_no_bare_except(self, package):
        bare = []
        for path in _python_files(package):
            tree = ast.parse(path.read_text(), filename=str(path))
            for node in ast.walk(tree):
                if isinstance(node, ast.ExceptHandler) and node.type is None:
                    bare.append(f"{path.relative_to(ROOT)}:{node.lineno}")
        assert bare == []
