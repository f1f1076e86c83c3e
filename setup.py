"""Packaging setup with an optional Cython build."""

import logging
import os
import sys
from pathlib import Path

from setuptools import Extension, find_packages, setup


LOGGER = logging.getLogger(__name__)

# Accept several truthy values for CYTHONIZE (so "True", True, "1", "true" all work)
CYTHONIZE_RAW = os.getenv("CYTHONIZE", "0")
CYTHONIZE = str(CYTHONIZE_RAW).strip().lower() in ("1", "true", "yes", "on")

if CYTHONIZE:
    from Cython.Build import cythonize

dist_name = "gpudiag"
package_dir = "gpudiag"
version = Path("VERSION.txt").read_text().strip()

install_requires = [
    "nvidia-ml-py>=12.535",
    "psutil>=5.9",
    "loguru>=0.7",
    "rich>=13.0",
]

extras_require = {
    "test": ["pytest>=7.4"],
}


def list_py_files(package_dir: str | Path) -> list[str]:
    """Return Python source files under the package directory."""
    root = Path(package_dir)
    # entry modules stay as plain Python
    return [
        str(path)
        for path in root.rglob("*.py")
        if path.name not in {"__init__.py", "__main__.py"}
    ]


setup_kwargs = {
    "name": dist_name,
    "version": version,
    "description": "One-shot diagnostics of GPUs, host resources and GPU processes",
    "python_requires": ">=3.10",
    "zip_safe": False,
    "packages": find_packages(include=[package_dir, f"{package_dir}.*"]),
    "install_requires": install_requires,
    "extras_require": extras_require,
    "entry_points": {"console_scripts": ["gpudiag=gpudiag.cli:main"]},
}

if CYTHONIZE:
    if sys.platform == "win32":
        extra_compile_args = ["/O2", "/MD"]
    else:
        extra_compile_args = ["-O3"]

    extensions = [
        Extension(
            py_file.replace(os.path.sep, ".")[:-3],
            [py_file],
            extra_compile_args=extra_compile_args,
        )
        for py_file in list_py_files(package_dir)
    ]
    LOGGER.info("Cythonizing %d modules", len(extensions))
    setup_kwargs["ext_modules"] = cythonize(
        extensions,
        compiler_directives={"language_level": "3", "binding": False},
    )

setup(**setup_kwargs)
