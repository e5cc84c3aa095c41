"""Setup script for openllm-provisioner."""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="openllm-provisioner",
    version="0.1.0",
    description="Provision OpenLLM model servers as systemd services on Linux hosts",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["openllm_provisioner", "openllm_provisioner.*"]),
    package_data={
        "openllm_provisioner": ["templates/*.j2"],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.11",
    install_requires=[
        "click>=8.1.0",
        "jinja2>=3.1.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "openllm-provision=openllm_provisioner.cli:main",
        ],
    },
)
