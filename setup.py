"""Setup configuration for the hand pose presentation project."""

from setuptools import setup, find_packages

try:
    with open("README.md", "r", encoding="utf-8") as fh:
        long_description = fh.read()
except FileNotFoundError:
    long_description = ""

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="handpose-trials",
    version="1.0.0",
    description="Hand pose stimulus presentation and motion logging",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["handpose", "handpose.*", "trial", "trial.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "handpose-session=trial.trial_manager:main",
        ],
    },
)
