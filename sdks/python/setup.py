"""Setup for Jarvis HQ Python SDK"""

from setuptools import setup, find_packages

setup(
    name="jarvis-hq-sdk",
    version="0.1.0",
    description="Python SDK for the Jarvis HQ gateway",
    author="Jarvis HQ Team",
    packages=find_packages(),
    install_requires=[
        "httpx>=0.25.2",
    ],
    python_requires=">=3.11",
)
