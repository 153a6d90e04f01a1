#!/usr/bin/env python
"""Setup configuration for HealSync FHIR."""

from setuptools import find_packages, setup

setup(
    name="healsync-fhir",
    version="0.1.0",
    description="FHIR R4 resource transformation and audit trail engine",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "fhirclient>=4.1.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.0.0",
        "structlog>=23.2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
)
