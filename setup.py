#!/usr/bin/env python3
"""
Setup configuration for Playlist-Packager
Catalog synchronization and content-package builder for video playlists
"""

from setuptools import setup, find_packages

# Read README for long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Core requirements (always installed)
core_requirements = [
    "aiohttp>=3.9.1",
    "asyncio-throttle>=1.0.2",
    "click>=8.1.7",
    "colorama>=0.4.6",
    "ffmpeg-python>=0.2.0",
    "mutagen>=1.47.0",
    "Pillow>=10.0.0",
    "python-dotenv>=1.0.0",
    "pyyaml>=6.0.1",
    "rapidfuzz>=3.5.0",
    "tqdm>=4.66.1",
]

setup(
    name="playlist-packager",
    version="0.3.0",
    author="Playlist-Packager Team",
    description="Keep a video catalog in sync with object storage and build deployable playlist packages",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Video",
    ],
    python_requires=">=3.9",
    install_requires=core_requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.3",
            "pytest-asyncio>=0.21.1",
            "black>=23.11.0",
            "flake8>=6.1.0",
            "mypy>=1.7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "playlist-packager=playlist_packager.main:cli",
        ],
    },
    include_package_data=True,
    package_data={
        "playlist_packager": ["config/*.yaml"],
    },
    keywords="video playlist package archive object-storage sync cli",
)
