#!/usr/bin/env python3
"""
Installation check for Employee Number Sync.

Confirms that the third-party libraries and the package modules import, that
the pure pieces behave, and that the command line entry point starts.
"""

import sys
import subprocess
import importlib


def check_import(label, import_name):
    """Try to import a module and describe the result."""
    try:
        importlib.import_module(import_name)
        return True, f"✓ {label} available"
    except ImportError as e:
        return False, f"✗ {label} missing: {e}"


def validate_dependencies():
    print("=== Dependency Validation ===")

    dependencies = [
        ("ldap3", "ldap3"),
        ("PyYAML", "yaml"),
        ("cryptography", "cryptography"),
        ("pytest", "pytest"),
    ]

    all_ok = True
    for label, import_name in dependencies:
        ok, message = check_import(label, import_name)
        print(f"  {message}")
        all_ok = all_ok and ok
    return all_ok


def validate_core_modules():
    print("\n=== Core Module Validation ===")

    modules = [
        "employee_sync.config",
        "employee_sync.logging_setup",
        "employee_sync.models",
        "employee_sync.ldap_client",
        "employee_sync.idp.base",
        "employee_sync.idp.pagination",
        "employee_sync.idp.okta",
        "employee_sync.reconcile",
        "employee_sync.main",
    ]

    all_ok = True
    for module in modules:
        ok, message = check_import(module, module)
        print(f"  {message}")
        all_ok = all_ok and ok
    return all_ok


def validate_functionality():
    """Exercise the parts that need no directory or provider."""
    print("\n=== Functionality Validation ===")

    try:
        from employee_sync.idp.pagination import parse_next_link
        link = '<https://acme.okta.com/api/v1/users?after=1>; rel="next"'
        assert parse_next_link(link) == 'https://acme.okta.com/api/v1/users?after=1'
        print("  ✓ Link header parsing")

        from employee_sync.ldap_client import build_display_name_filter
        assert '\\28' in build_display_name_filter('Doe (Jane)')
        print("  ✓ LDAP filter escaping")

        from employee_sync.models import IdentityRecord
        from employee_sync.reconcile import is_candidate, format_summary
        record = IdentityRecord(id='u1', status='ACTIVE', email='jane@example.com', display_name='Jane Doe')
        assert is_candidate(record, '*@corp.example.com*')
        assert format_summary(1, 0, 0).startswith('Candidates discovered: 1')
        print("  ✓ Candidate filter and summary")

        return True

    except Exception as e:
        print(f"  ✗ Functionality test failed: {e}")
        return False


def validate_cli():
    print("\n=== CLI Validation ===")

    result = subprocess.run([sys.executable, "-m", "employee_sync.main", "--help"],
                            capture_output=True, text=True)
    if result.returncode == 0:
        print("  ✓ Help command working")
        return True

    print(f"  ✗ Help command failed: {result.stderr.strip()}")
    return False


def main():
    print("Employee Number Sync - Installation Validation")
    print("=" * 50)

    all_validations = [
        validate_dependencies(),
        validate_core_modules(),
        validate_functionality(),
        validate_cli(),
    ]

    print("\n=== Summary ===")
    if all(all_validations):
        print("✓ All validations passed!")
        print("\nNext steps:")
        print("  1. Copy config.example.yaml to config.yaml and fill in your settings")
        print("  2. Test with: python -m employee_sync.main --health-check")
        print("  3. Preview with: python -m employee_sync.main --dry-run")
        print("  4. Run sync: python -m employee_sync.main")
        return 0

    print("✗ Some validations failed!")
    print("Please resolve the issues above before using the application.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
