#!/usr/bin/env python3
"""Validate local FabLab scheduling environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import date, timedelta
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.repository.data_repository import DataRepository
from backend.services.availability_service import AvailabilityService
from backend.services.report_pdf import render_utilization_report_pdf
from backend.services.report_service import ReportService
from backend.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="fablab-env-")

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("pandas", "pandas"),
        ("reportlab", "reportlab"),
        ("requests", "requests"),
        ("streamlit", "streamlit"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except (ImportError, PackageNotFoundError) as exc:
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
            database_path=Path(temp_dir) / "fablab_validation.db",
        )
        repository = DataRepository(validation_settings)

        # CHECK 3: Database initialization and catalog
        try:
            repository.initialize_database()
            repository.seed_catalog()
            machines = repository.list_machines()
            if not machines:
                raise RuntimeError("machine catalog is empty after seeding")
            ok, line = _print_result("Database and catalog", True, f": {len(machines)} machines")
        except (RuntimeError, OSError) as exc:
            ok, line = _print_result("Database and catalog", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Demo reservations
        today = date.today()
        try:
            seeded = repository.seed_demo_reservations(today=today)
            if seeded <= 0:
                raise RuntimeError("no demo reservations were seeded")
            ok, line = _print_result("Demo reservations", True, f": {seeded} requests")
        except RuntimeError as exc:
            ok, line = _print_result("Demo reservations", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Availability computation
        try:
            availability_service = AvailabilityService(repository=repository, settings=validation_settings)
            week = [today + timedelta(days=offset) for offset in range(7)]
            days = availability_service.availability_range(week, service_name="3D Printing")
            free_blocks = sum(int(item.morning) + int(item.afternoon) for item in days)
            ok, line = _print_result("Availability", True, f": {free_blocks} free blocks this week")
        except Exception as exc:
            ok, line = _print_result("Availability", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 6: Report summary and PDF export
        try:
            summary = ReportService(repository=repository, settings=validation_settings).build_summary(
                today=today
            )
            pdf = render_utilization_report_pdf(summary)
            if not pdf.startswith(b"%PDF"):
                raise RuntimeError("rendered report is not a PDF document")
            ok, line = _print_result(
                "Report export",
                True,
                f": {summary.total_requests} requests, {len(pdf)} bytes",
            )
        except Exception as exc:
            ok, line = _print_result("Report export", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" FabLab Environment Validation")
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
