#!/usr/bin/env python
"""
Bookshop Orders Core Setup
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="bookshop-orders",
    version="1.0.0",
    description="Transactional order core with sales history, reporting and recommendations",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["bookshop", "bookshop.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Framework :: FastAPI",
        "Topic :: Database",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "pytest-asyncio>=0.23.0",
            "aiosqlite>=0.19.0",
            "httpx>=0.26.0",
            "black>=23.0.0",
            "ruff>=0.1.0",
            "mypy>=1.5.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "bookshop-bulk-load=bookshop.ingestion.bulk_loader:cli",
        ],
    },
    include_package_data=True,
    zip_safe=False,
    keywords=[
        "orders",
        "ecommerce",
        "bookshop",
        "fastapi",
        "sqlalchemy",
        "postgresql",
    ],
)
