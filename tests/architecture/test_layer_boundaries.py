"""
Layer boundary tests.

1. billing_kernel/** may NOT import billing_engines, billing_services or
   billing_config.  The kernel never depends upward.

2. billing_engines/** is pure: it may import the kernel's domain types and
   logging only, never models, selectors, db or SQLAlchemy.

3. billing_config/** may import kernel domain types only.

These tests read source code via AST.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    tree = ast.parse(filepath.read_text(encoding="utf-8"), filename=str(filepath))
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
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            if any(module == p or module.startswith(f"{p}.") for p in forbidden):
                found.append(f"  {filepath.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


class TestKernelNoUpwardDependencies:
    FORBIDDEN_PREFIXES = ("billing_engines", "billing_services", "billing_config")

    def test_kernel_does_not_import_upward(self):
        violations = _violations("billing_kernel", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "Kernel boundary violation:\n" + "\n".join(violations)
        )


class TestEnginesArePure:
    """Engines see DTOs only; persistence stays in the kernel and services."""

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "billing_kernel.models",
        "billing_kernel.selectors",
        "billing_kernel.services",
        "billing_kernel.db",
        "billing_services",
        "billing_config",
    )

    def test_engines_do_not_touch_persistence(self):
        violations = _violations("billing_engines", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "Engine purity violation:\n" + "\n".join(violations)
        )


class TestConfigBoundary:
    FORBIDDEN_PREFIXES = (
        "billing_services",
        "billing_engines",
        "billing_kernel.models",
        "billing_kernel.db",
        "billing_kernel.services",
    )

    def test_config_imports_domain_only(self):
        violations = _violations("billing_config", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "Config boundary violation:\n" + "\n".join(violations)
        )


class TestCounterIncrement:
    def test_counter_never_uses_max_plus_one(self):
        """Numbers come from the counter row, never from MAX(...) + 1."""
        source = (ROOT / "billing_kernel/services/invoice_counter_service.py").read_text()
        tree = ast.parse(source)
        called = {
            node.func.attr
            for node in ast.walk(tree)
            if isinstance(node, ast.Call) and isinstance(node.func, ast.Attribute)
        }
        assert "max" not in called
