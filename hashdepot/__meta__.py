# -*- coding: utf-8 -*-
"""Define project metadata
"""

__title__ = "hashdepot"
__summary__ = "A content-addressed object upload and verification service."

__version__ = "0.1.0"

__install_requires__ = [
    "fs>=2.4",
    "fastapi>=0.100",
    "anyio>=3.7",
    "pydantic>=2",
    "pydantic-settings>=2",
    "uvicorn>=0.23",
]
__tests_require__ = ["pytest", "httpx", "tox"]

__author__ = "Derrick Gilland"
__email__ = "dgilland@gmail.com"

__license__ = "MIT License"
