#!/usr/bin/env python
from setuptools import setup, find_packages

with open("README.md", "r") as fh:
    long_description = fh.read()

with open("VERSION") as version_file:
    version = version_file.read().strip()

requires = [
    "cerberus",
    "colorama",
    "coloredlogs",
    "click",
    "click-default-group",
    "cryptography",
    "pyyaml",
    "snowflake-connector-python[secure-local-storage]",
    "snowflake-sqlalchemy>=1.5",
    "sqlalchemy",
]

dev_requires = [
    "black",
    "coverage",
    "flake8",
    "isort",
    "mypy",
    "pytest",
    "pytest-cov",
    "pytest-mock",
    "types-PyYAML",
]

setup(
    name="accessfrost",
    version=version,
    author="Accessfrost Contributors",
    description="Reconcile access providers with Snowflake roles, policies and shares",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    include_package_data=True,
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    tests_require=dev_requires,
    install_requires=requires,
    extras_require={"dev": dev_requires},
    entry_points={"console_scripts": ["accessfrost = accessfrost.cli:main"]},
)
