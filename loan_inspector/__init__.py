"""loan_inspector package root.

Read historical tracked balances of lending market loans
using batched ``eth_call`` JSON-RPC requests.

"""

import sys


#: Minimum required Python version to run this package
MIN_PYTHON_VERSION = (3, 10)


class LoanInspectorError(Exception):
    """Root of all errors that abort a loan inspection run."""


class ConfigurationError(LoanInspectorError):
    """Bad input parameters.

    Raised before any JSON-RPC requests are made.
    """


def _check_python_version():
    """Try early abort if the Python version is too old."""

    # Use Python tuple comparison for version numbers
    if sys.version_info < MIN_PYTHON_VERSION:
        raise RuntimeError(f"loan-inspector needs Python {MIN_PYTHON_VERSION[0]}.{MIN_PYTHON_VERSION[1]} or later")


_check_python_version()
