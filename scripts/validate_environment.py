#!/usr/bin/env python3
"""Validate local residence booking environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from residence_booking.domain.errors import ConflictError
from residence_booking.domain.models import Actor
from residence_booking.repository.data_repository import DataRepository
from residence_booking.services.eligibility_service import EligibilityService
from residence_booking.services.lifecycle_service import BookingLifecycleService
from residence_booking.utils.config import get_settings

SEPARATOR_LINE = "=" * 44

SMOKE_PROFILE = {
    "exam_record_id": "BAC-000001",
    "exam_year": "2023",
    "sex": "female",
    "birth_date": "2004-05-17",
    "field_of_study": "Computer Science",
    "study_year": "2",
    "home_wilaya": "Setif",
}


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="residence-env-")

    # CHECK 1: Python version >= 3.11
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

    # CHECK 2: Required packages importable
    package_names = ["fastapi", "uvicorn", "pydantic", "httpx", "pytest"]
    import_errors: list[str] = []
    for module_name in package_names:
        try:
            importlib.import_module(module_name)
        except ImportError as exc:
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
            database_path=Path(temp_dir) / "residence_validation.db",
        )
        repository = DataRepository(validation_settings)

        # CHECK 3: Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except RuntimeError as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Demo directory seeding
        try:
            seeded = repository.seed_demo_directory_if_empty()
            if seeded != 3:
                raise RuntimeError(f"expected 3 residencies, got {seeded}")
            ok, line = _print_result("Demo directory: 3 residencies", True)
        except Exception as exc:
            ok, line = _print_result("Demo directory", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Allocation smoke test: second approval for a room must conflict
        try:
            eligibility = EligibilityService(repository=repository, settings=validation_settings)
            lifecycle = BookingLifecycleService(repository=repository, settings=validation_settings)
            first = eligibility.create_request(
                Actor("student-1", "student"),
                {"residency_id": "res-cite5", "room_number": 1, **SMOKE_PROFILE},
            )
            second = eligibility.create_request(
                Actor("student-2", "student"),
                {"residency_id": "res-cite5", "room_number": 1, **SMOKE_PROFILE},
            )
            manager = Actor("service-1", "service")
            lifecycle.approve(first.request_id, manager)
            try:
                lifecycle.approve(second.request_id, manager)
            except ConflictError:
                pass
            else:
                raise RuntimeError("room was allocated twice")
            ok, line = _print_result("Allocation exclusivity", True)
        except Exception as exc:
            ok, line = _print_result("Allocation exclusivity", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Residence Booking Environment Validation")
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
