from setuptools import setup, find_packages

setup(
    name="aurorus",
    version="0.1.0",
    description="AUR helper: searches, installs and removes packages from the AUR and pacman repositories.",
    author="aurorus developers",
    license="GPL-3.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "rich>=13.0.0",
        "typer>=0.9.0",
        "PyYAML>=6.0",
        "GitPython>=3.1.0",
        "requests>=2.28.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "aurorus=aurorus.modules.cli:main",
        ],
    },
)
