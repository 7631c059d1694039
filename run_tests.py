#!/usr/bin/env python
"""
Test runner for the Space Booking system.
Runs the pytest suite with the test settings.
"""
import os
import sys

import pytest

if __name__ == "__main__":
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'booking.tests.test_settings')

    test_labels = sys.argv[1:] if len(sys.argv) > 1 else ['booking/tests']
    failures = pytest.main(['-v', *test_labels])

    if failures:
        sys.exit(1)
    else:
        print("\nAll tests passed!")
        sys.exit(0)
