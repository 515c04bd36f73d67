"""
Verso setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="verso",
    version="1.0.0",
    description="Verso — artifact version control: versions, branches, diff and three-way merge",
    packages=find_packages(include=["verso", "verso.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "verso=verso.cli:main",
        ],
    },
    install_requires=[
        "sqlalchemy>=2.0",
        "psycopg2-binary>=2.9",
        "pydantic>=2.5",
        "redis>=5.0",
        "networkx>=3.2",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
)
