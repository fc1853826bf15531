from __future__ import annotations

from pathlib import Path

from setuptools import find_packages, setup


ROOT = Path(__file__).resolve().parent


def read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


VERSION = read_text(ROOT / "VERSION").strip()
README = read_text(ROOT / "README.md")


setup(
    name="boa-api",
    version=VERSION,
    description="Python client for the Boa XML-RPC API.",
    long_description=README,
    long_description_content_type="text/markdown",
    author="Boa API Client Team",
    python_requires=">=3.8",
    packages=find_packages(include=["boaapi", "boaapi.*"]),
    include_package_data=True,
    install_requires=[
        "httpx>=0.23",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "boa-client=boaapi.cli:main",
        ]
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3 :: Only",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
    ],
    keywords=["boa", "xmlrpc", "client", "mining software repositories"],
    project_urls={
        "Repository": "https://github.com/boalang/api-python",
    },
)
