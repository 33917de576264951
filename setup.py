from pathlib import Path

from setuptools import find_packages, setup

ROOT = Path(__file__).parent.resolve()


def read_version() -> str:
    for line in (ROOT / "binforest" / "__init__.py").read_text().splitlines():
        if line.startswith("__version__"):
            return line.split("=", 1)[1].strip().strip('"')
    raise RuntimeError("__version__ not found in binforest/__init__.py")


setup(
    name="binforest",
    version=read_version(),
    description="Group-wise histogram decision trees and random forests",
    packages=find_packages(include=["binforest", "binforest.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy",
        "torch",
        "scikit-learn",
    ],
    extras_require={
        "test": ["pytest", "pandas"],
    },
)
