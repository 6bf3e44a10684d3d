"""Entry point for ``python -m payroll_ledger``: serve the HTTP API."""

import sys

from payroll_ledger.cli import LedgerCli


def main() -> int:
    """Run the API server; accepts ``--host`` and ``--port``."""
    return LedgerCli().run(["serve", *sys.argv[1:]])


if __name__ == "__main__":
    sys.exit(main())
