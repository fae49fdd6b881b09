"""
Import-boundary enforcement for the three packages.

1. Domain purity   -- agreement_kernel/domain/** imports no ORM, imaging,
                      rendering or web libraries and no outer kernel layers.
2. Kernel isolation -- agreement_kernel/** never imports agreement_config or
                      agreement_services.
3. Config direction -- agreement_config/** never imports agreement_services.
4. Clock discipline -- only domain/clock.py reads the wall clock.

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[str]:
    """Return all .py files under *package*, sorted for deterministic order."""
    return sorted(glob.glob(f"{ROOT / package}/**/*.py", recursive=True))


def _parse(filepath: str) -> ast.AST:
    return ast.parse(Path(filepath).read_text(), filename=filepath)


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    results: list[tuple[int, str]] = []
    for node in ast.walk(_parse(filepath)):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    """True if *module* equals or is a child of any prefix."""
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden):
                found.append(f"{Path(filepath).relative_to(ROOT)}:{lineno} imports {module}")
    return found


class TestDomainPurity:
    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "PIL",
        "reportlab",
        "flask",
        "yaml",
        "agreement_kernel.db",
        "agreement_kernel.models",
        "agreement_kernel.services",
        "agreement_config",
        "agreement_services",
    )

    def test_domain_files_exist(self):
        assert _python_files("agreement_kernel/domain")

    def test_domain_imports_nothing_impure(self):
        violations = _violations("agreement_kernel/domain", self.FORBIDDEN_PREFIXES)
        assert violations == [], "\n".join(violations)


class TestKernelIsolation:
    def test_kernel_never_imports_outer_layers(self):
        violations = _violations(
            "agreement_kernel", ("agreement_config", "agreement_services"),
        )
        assert violations == [], "\n".join(violations)

    def test_config_never_imports_services(self):
        violations = _violations("agreement_config", ("agreement_services",))
        assert violations == [], "\n".join(violations)

    def test_only_bootstrap_reads_configuration(self):
        violations = [
            v
            for v in _violations("agreement_services", ("agreement_config",))
            if not v.startswith("agreement_services/bootstrap.py")
        ]
        assert violations == [], "\n".join(violations)


class TestClockDiscipline:
    def test_no_wall_clock_outside_clock_module(self):
        offenders = []
        for package in ("agreement_kernel", "agreement_services"):
            for filepath in _python_files(package):
                if filepath.endswith("domain/clock.py"):
                    continue
                for node in ast.walk(_parse(filepath)):
                    if (
                        isinstance(node, ast.Attribute)
                        and node.attr in ("now", "utcnow", "today")
                        and isinstance(node.value, ast.Name)
                        and node.value.id in ("datetime", "date")
                    ):
                        offenders.append(f"{filepath}:{node.lineno}")
        assert offenders == [], "\n".join(offenders)
