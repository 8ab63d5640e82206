import multiprocessing
import platform

from catalog import cli, lib, schemas, server, services, utils

__all__ = (
    "cli",
    "lib",
    "schemas",
    "server",
    "services",
    "utils",
)

if platform.system() == "Darwin":
    multiprocessing.set_start_method("fork", force=True)
