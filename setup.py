#!/usr/bin/env python

"""
eventpipe - Error and telemetry event pipeline for Python
=========================================================

**eventpipe captures errors, messages and session updates** and delivers
them as envelopes to a Sentry compatible collector over HTTP.
"""

import os
from setuptools import setup, find_packages

here = os.path.abspath(os.path.dirname(__file__))


def get_file_text(file_name):
    with open(os.path.join(here, file_name)) as in_file:
        return in_file.read()


setup(
    name="eventpipe",
    version="0.4.0",
    description="Asynchronous error and telemetry event pipeline",
    long_description=get_file_text("README.md"),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=("tests", "tests.*")),
    # PEP 561
    package_data={"eventpipe": ["py.typed"]},
    zip_safe=False,
    license="MIT",
    python_requires=">=3.8",
    install_requires=[
        "aiohttp>=3.8",
        "urllib3>=1.26.11",
        "certifi",
    ],
    extras_require={
        "test": ["pytest", "pytest-asyncio"],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Framework :: AsyncIO",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
)
