"""
uacpi_build — freestanding uACPI archive + ctypes binding generator.

Fetch the uACPI submodule, compile it into libuacpi.a under kernel-mode
constraints, and emit a ctypes module describing its public headers.
No ACPI semantics, no runtime API beyond the generated declarations.
"""

__version__ = "0.1.0"
PACKAGE_NAME = "uacpi_build"
BUILDER_NAME = "uacpi_build"
SCHEMA_VERSION = "0.1"
LIBRARY_NAME = "uacpi"
