from __future__ import annotations

import os
import sys
from typing import NoReturn


def run_cli() -> NoReturn:
    """Run the Litestar CLI with the inventory app preselected."""
    os.environ.setdefault("LITESTAR_APP", "catalog.server.asgi:create_app")
    from litestar.cli.main import litestar_group

    sys.exit(litestar_group())  # pyright: ignore[reportUnknownMemberType]


if __name__ == "__main__":
    run_cli()
