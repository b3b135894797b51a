#!/usr/bin/env python3
"""Validate local bed allocation environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from importlib.metadata import version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from bedalloc.domain.models import AllocationMode, AllocationRequest, CampType, PersonType
from bedalloc.repository.data_repository import DataRepository
from bedalloc.services.allocation_service import BedAllocationService
from bedalloc.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="bedalloc-env-")

    # CHECK 1 - Python version >= 3.11
    if sys.version_info >= (3, 11):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.11",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2 - Required packages importable
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("pandas", "pandas"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except Exception as exc:  # pragma: no cover - runtime guard
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "bedalloc_validation.db",
        )
        repository = DataRepository(validation_settings)

        # CHECK 3 - Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except Exception as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4 - Demo data seeding
        induction_camp_id = None
        try:
            repository.seed_demo_data()
            camps = repository.list_camps([1, 2])
            induction = [camp for camp in camps.values() if camp.camp_type is CampType.INDUCTION]
            if not induction:
                raise RuntimeError("induction camp missing after seed")
            induction_camp_id = induction[0].camp_id
            ok, line = _print_result("Demo data seeding", True, f": {len(camps)} camps")
        except Exception as exc:
            ok, line = _print_result("Demo data seeding", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5 - Allocation preview
        try:
            if induction_camp_id is None:
                raise RuntimeError("no induction camp to allocate into")
            service = BedAllocationService(repository=repository, settings=validation_settings)
            candidates = service.list_induction_candidates(induction_camp_id, PersonType.TECHNICIAN)
            result = service.preview(
                AllocationRequest(
                    mode=AllocationMode.INDUCTION,
                    camp_id=induction_camp_id,
                    candidate_ids=tuple(person.person_id for person in candidates),
                    personnel_type=PersonType.TECHNICIAN,
                )
            )
            if result.allocated_count != len(candidates):
                raise RuntimeError(
                    f"expected {len(candidates)} allocations, got {result.allocated_count}"
                )
            ok, line = _print_result(
                "Allocation preview",
                True,
                f": {result.allocated_count} allocated via {result.strategy.value}",
            )
        except Exception as exc:
            ok, line = _print_result("Allocation preview", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Bed Allocation Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
