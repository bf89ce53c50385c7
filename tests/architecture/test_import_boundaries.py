"""
Import-boundary enforcement for the layer structure.

1. Kernel has no upward dependencies: radiopharm_kernel/** may not import
   radiopharm_engines, radiopharm_services or radiopharm_config.
2. Domain purity: radiopharm_kernel/domain/** may not import ORM or DB code.
3. Engine purity: radiopharm_engines/** may not import the DB layer, ORM
   models, kernel services, config or the services layer.
4. Config imports only kernel domain and utils.

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted(Path(p) for p in glob.glob(f"{ROOT / package}/**/*.py", recursive=True))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden):
                found.append(f"  {filepath.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


class TestKernelNoUpwardDependencies:

    def test_kernel_does_not_import_outer_layers(self):
        violations = _violations(
            "radiopharm_kernel",
            ("radiopharm_engines", "radiopharm_services", "radiopharm_config"),
        )
        assert not violations, (
            "radiopharm_kernel/** must not import outer layers:\n" + "\n".join(violations)
        )

    def test_packages_exist(self):
        # Guard against the scan silently finding nothing
        assert _python_files("radiopharm_kernel")
        assert _python_files("radiopharm_engines")


class TestKernelDomainPurity:

    def test_domain_no_orm_imports(self):
        violations = _violations(
            "radiopharm_kernel/domain",
            ("sqlalchemy", "psycopg2", "sqlite3", "radiopharm_kernel.db",
             "radiopharm_kernel.models", "radiopharm_kernel.services"),
        )
        assert not violations, (
            "radiopharm_kernel/domain/** must stay free of persistence:\n"
            + "\n".join(violations)
        )


class TestEnginePurity:

    def test_engines_no_db_or_services(self):
        violations = _violations(
            "radiopharm_engines",
            (
                "sqlalchemy",
                "radiopharm_kernel.db",
                "radiopharm_kernel.models",
                "radiopharm_kernel.services",
                "radiopharm_services",
                "radiopharm_config",
            ),
        )
        assert not violations, (
            "radiopharm_engines/** must be pure:\n" + "\n".join(violations)
        )


class TestConfigBoundary:

    def test_config_uses_only_domain_and_utils(self):
        violations = _violations(
            "radiopharm_config",
            (
                "sqlalchemy",
                "radiopharm_kernel.db",
                "radiopharm_kernel.models",
                "radiopharm_kernel.services",
                "radiopharm_engines",
                "radiopharm_services",
            ),
        )
        assert not violations, (
            "radiopharm_config/** may only import kernel domain and utils:\n"
            + "\n".join(violations)
        )
