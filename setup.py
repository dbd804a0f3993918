"""Setup configuration for buildstats"""

from setuptools import setup, find_packages

setup(
    name="buildkite-build-stats",
    version="0.1.0",
    description=(
        "CLI tool for Buildkite build timing reports: filtered, grouped "
        "duration percentiles backed by a Redis build cache."
    ),
    author="Buildkite Build Stats Contributors",
    author_email="",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "requests>=2.28.0",
        "redis>=4.5.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
        "dev": [
            "pytest>=7.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "buildkite-build-stats=buildstats.main:main",
        ],
    },
)
